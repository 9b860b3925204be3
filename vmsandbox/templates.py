"""Template catalog lookup and definition rendering."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List

from vmsandbox.constants import (
    PLACEHOLDER_RE,
    PLACEHOLDERS,
    PROFILE_SUFFIX,
    TEMPLATE_SUFFIX,
)
from vmsandbox.exceptions import ArtifactIOError, RenderError, TemplateNotFound
from vmsandbox.models import Template
from vmsandbox.utils import log


class TemplateCatalog:
    """Directory of ``<key>.xml`` definitions, each with an optional ``<key>.json`` profile.

    Nothing is cached: every lookup rescans the directory so templates added
    while the orchestrator runs are picked up.
    """

    def __init__(self, templates_dir: Path) -> None:
        self.templates_dir = templates_dir

    def keys(self) -> List[str]:
        if not self.templates_dir.is_dir():
            log("WARN", f"Template directory not found: {self.templates_dir}")
            return []
        try:
            entries = list(self.templates_dir.iterdir())
        except OSError as exc:
            raise ArtifactIOError(self.templates_dir.name, self.templates_dir, exc) from exc
        return sorted(entry.stem for entry in entries if entry.suffix == TEMPLATE_SUFFIX and entry.is_file())

    def resolve(self, key: str) -> Template:
        path = self.templates_dir / f"{key}{TEMPLATE_SUFFIX}"
        if not key or "/" in key or "\\" in key or not path.is_file():
            raise TemplateNotFound(key, self.keys())
        try:
            document = path.read_text()
        except OSError as exc:
            raise ArtifactIOError(key, path, exc) from exc
        profile = self.templates_dir / f"{key}{PROFILE_SUFFIX}"
        return Template(
            key=key,
            path=path,
            document=document,
            placeholders=frozenset(PLACEHOLDER_RE.findall(document)),
            profile_path=profile if profile.is_file() else None,
        )


_TOKEN_RE = re.compile(
    "|".join(re.escape(token) for token in sorted(PLACEHOLDERS, key=len, reverse=True))
    + "|" + PLACEHOLDER_RE.pattern
)


def render_definition(template: Template, name: str, substitutions: Dict[str, str]) -> str:
    """Substitute the known placeholder tokens in one pass; any leftover token is fatal.

    Known tokens win over the generic pattern, so ``REPLACE_NAME_VARS.fd``
    renders as ``<name>_VARS.fd``. Substituted values are never rescanned.
    """
    unresolved: List[str] = []

    def _substitute(match: "re.Match[str]") -> str:
        token = match.group(0)
        if token in substitutions:
            return substitutions[token]
        unresolved.append(token)
        return token

    document = _TOKEN_RE.sub(_substitute, template.document)
    if unresolved:
        raise RenderError(name, unresolved)
    return document
