"""Custom exceptions for vm-sandbox."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence


class SandboxError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class ConfigError(SandboxError):
    pass


class TemplateNotFound(SandboxError):
    def __init__(self, key: str, available: Sequence[str]) -> None:
        self.key = key
        self.available: List[str] = list(available)
        listing = "\n    ".join(self.available) if self.available else "(none)"
        super().__init__(
            f"Template '{key}' not found.\n"
            f"  Available templates:\n"
            f"    {listing}"
        )


class AlreadyExists(SandboxError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"VM '{name}' already exists. Run teardown first or pick another name.")


class RenderError(SandboxError):
    def __init__(self, name: str, unresolved: Sequence[str]) -> None:
        self.name = name
        self.unresolved: List[str] = sorted(set(unresolved))
        super().__init__(
            f"Definition for '{name}' has unresolved placeholders: {', '.join(self.unresolved)}"
        )


class FirmwareVarsNotFound(SandboxError):
    def __init__(self, name: str, searched: Sequence[Path]) -> None:
        self.name = name
        self.searched = list(searched)
        locations = ", ".join(str(p) for p in self.searched) or "(no locations configured)"
        super().__init__(
            f"OVMF_VARS not found for '{name}' (searched: {locations}). "
            "Ensure the 'ovmf' package is installed."
        )


class DiskAllocationError(SandboxError):
    def __init__(self, name: str, path: Path, reason: str) -> None:
        self.name = name
        self.path = path
        super().__init__(f"Failed to allocate disk for '{name}' at {path}: {reason}")


class ArtifactIOError(SandboxError):
    def __init__(self, name: str, path: Path, cause: OSError) -> None:
        self.name = name
        self.path = path
        self.cause = cause
        super().__init__(f"Filesystem error for '{name}' at {path}: {cause}")


class ControlPlaneError(SandboxError):
    def __init__(self, operation: str, name: Optional[str], cause: object) -> None:
        self.operation = operation
        self.name = name
        self.cause = cause
        target = f" '{name}'" if name else ""
        super().__init__(f"libvirt {operation}{target} failed: {cause}")


class IdentityGenerationError(SandboxError):
    """The host random source failed; this is a host misconfiguration."""


class IdentityCollision(SandboxError):
    def __init__(self, name: str, field: str, value: str) -> None:
        self.name = name
        self.field = field
        self.value = value
        super().__init__(
            f"Generated {field} '{value}' for '{name}' is already used by a registered domain"
        )


class HostPreparationError(SandboxError):
    pass
