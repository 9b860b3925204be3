"""Host preconditions applied explicitly, with an audit trail."""

from __future__ import annotations

import subprocess
import time
from pathlib import Path

from vmsandbox.constants import SECURITY_DRIVER_LINE
from vmsandbox.exceptions import HostPreparationError
from vmsandbox.utils import ensure_directory, log, run


def security_driver_disabled(qemu_conf: Path) -> bool:
    if not qemu_conf.exists():
        return False
    try:
        content = qemu_conf.read_text()
    except OSError as exc:
        raise HostPreparationError(f"Cannot read {qemu_conf}: {exc}") from exc
    return any(line.strip() == SECURITY_DRIVER_LINE for line in content.splitlines())


def audit(audit_log: Path, action: str, target: Path) -> None:
    stamp = time.strftime("%Y-%m-%dT%H:%M:%S%z")
    try:
        ensure_directory(audit_log.parent)
        with open(audit_log, "a") as f:
            f.write(f"{stamp}\t{action}\t{target}\n")
    except OSError as exc:
        raise HostPreparationError(f"Cannot write audit log {audit_log}: {exc}") from exc
    log("INFO", f"Audit: {action} ({target})")


def ensure_security_driver_disabled(qemu_conf: Path, audit_log: Path, restart: bool = True) -> bool:
    """Turn off libvirt's QEMU security driver so a custom-built QEMU binary can run.

    Idempotent: returns False without touching anything when the setting is
    already present.
    """
    if security_driver_disabled(qemu_conf):
        log("DEBUG", f"{qemu_conf} already has {SECURITY_DRIVER_LINE}")
        return False

    log("INFO", "Disabling libvirt security driver to allow custom QEMU binary...")
    try:
        existing = qemu_conf.read_text() if qemu_conf.exists() else ""
        with open(qemu_conf, "a") as f:
            if existing and not existing.endswith("\n"):
                f.write("\n")
            f.write(SECURITY_DRIVER_LINE + "\n")
    except OSError as exc:
        raise HostPreparationError(f"Cannot update {qemu_conf}: {exc}") from exc
    audit(audit_log, "security_driver=none", qemu_conf)

    if restart:
        try:
            run(["systemctl", "restart", "libvirtd"], capture_output=True)
        except (FileNotFoundError, subprocess.CalledProcessError) as exc:
            raise HostPreparationError(f"Failed to restart libvirtd after editing {qemu_conf}: {exc}") from exc
        audit(audit_log, "restart libvirtd", qemu_conf)
    return True
