"""Teardown pipeline: best-effort removal of a sandbox's registration and artifacts."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from vmsandbox.artifacts import ArtifactStore
from vmsandbox.config import SandboxConfig, validate_instance_name
from vmsandbox.controlplane import ControlPlane
from vmsandbox.exceptions import SandboxError
from vmsandbox.models import STEP_DONE, STEP_FAILED, STEP_NOT_FOUND, TeardownReport
from vmsandbox.utils import log


class Teardown:
    """Every step runs regardless of earlier failures; absence is never an error."""

    def __init__(
        self,
        cfg: SandboxConfig,
        control_plane: ControlPlane,
        store: Optional[ArtifactStore] = None,
    ) -> None:
        self.cfg = cfg
        self.control_plane = control_plane
        self.store = store or ArtifactStore(cfg.vms_dir, cfg.nvram_dir)

    def teardown(self, name: Optional[str] = None) -> TeardownReport:
        name = validate_instance_name(name or self.cfg.scratch_name)
        report = TeardownReport(name)
        paths = self.store.paths(name)
        log("INFO", f"Tearing down VM: {name}")

        self._domain(report, name)
        self._artifact(report, "disk", "disk image", paths.disk)
        self._artifact(report, "definition", "XML definition", paths.definition)
        self._artifact(report, "nvram", "NVRAM", paths.nvram)
        self._artifact(report, "profile", "profile link", paths.profile_link)

        if report.ok:
            log("SUCCESS", f"Teardown complete for {name}")
        else:
            failed = ", ".join(step.step for step in report.failures)
            log("ERROR", f"Teardown of {name} incomplete; failed steps: {failed}")
        return report

    def _domain(self, report: TeardownReport, name: str) -> None:
        try:
            if not self.control_plane.exists(name):
                log("INFO", f"  Domain '{name}' not found in libvirt (skipping destroy/undefine)")
                report.record("domain", STEP_NOT_FOUND)
                return
            if self.control_plane.is_running(name):
                log("INFO", "  Stopping domain...")
                self.control_plane.stop(name)
            log("INFO", "  Undefining domain and removing NVRAM...")
            self.control_plane.undefine(name, purge_firmware=True)
        except SandboxError as exc:
            log("ERROR", f"  {exc}")
            report.record("domain", STEP_FAILED, str(exc))
            return
        report.record("domain", STEP_DONE)

    def _artifact(self, report: TeardownReport, step: str, label: str, path: Path) -> None:
        try:
            removed = self.store.remove(report.name, path)
        except SandboxError as exc:
            log("ERROR", f"  {exc}")
            report.record(step, STEP_FAILED, str(exc))
            return
        if removed:
            log("INFO", f"  Removed {label}: {path}")
            report.record(step, STEP_DONE, str(path))
        else:
            log("INFO", f"  {label[0].upper()}{label[1:]} not found: {path}")
            report.record(step, STEP_NOT_FOUND, str(path))
