"""On-disk state for sandbox instances: disk image, rendered definition, firmware vars."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List

from vmsandbox.constants import (
    DISK_SUFFIX,
    FIRMWARE_SECURE_GLOB,
    NVRAM_SUFFIX,
    PROFILE_SUFFIX,
    QEMU_GROUP,
    QEMU_USER,
    TEMPLATE_SUFFIX,
)
from vmsandbox.exceptions import ArtifactIOError, DiskAllocationError, FirmwareVarsNotFound
from vmsandbox.models import InstancePaths
from vmsandbox.utils import ensure_directory, log, run


def find_firmware_vars(name: str, search_dirs: Iterable[Path], fallback: Path) -> Path:
    """Prefer a Microsoft-signed (Secure Boot) OVMF_VARS, else the fallback template."""
    searched: List[Path] = []
    for directory in search_dirs:
        searched.append(directory)
        if not directory.is_dir():
            continue
        candidates = sorted(directory.rglob(FIRMWARE_SECURE_GLOB))
        if candidates:
            log("DEBUG", f"Secure Boot variable store found: {candidates[0]}")
            return candidates[0]
    searched.append(fallback)
    if fallback.is_file():
        log(
            "WARN",
            f"No Secure Boot OVMF_VARS found; falling back to {fallback}. "
            "Pair it with the non-secure OVMF_CODE_4M.fd loader (secure=\"no\") or the domain will not boot",
        )
        return fallback
    raise FirmwareVarsNotFound(name, searched)


class ArtifactStore:
    """Owns every file derived from an instance name.

    Disk, definition and profile link live in ``vms_dir``; the firmware
    variable store lives in libvirt's NVRAM directory.
    """

    def __init__(self, vms_dir: Path, nvram_dir: Path) -> None:
        self.vms_dir = vms_dir
        self.nvram_dir = nvram_dir

    def paths(self, name: str) -> InstancePaths:
        return InstancePaths(
            disk=self.vms_dir / f"{name}{DISK_SUFFIX}",
            definition=self.vms_dir / f"{name}{TEMPLATE_SUFFIX}",
            nvram=self.nvram_dir / f"{name}{NVRAM_SUFFIX}",
            profile_link=self.vms_dir / f"{name}{PROFILE_SUFFIX}",
        )

    def prepare(self, name: str) -> None:
        for directory in (self.vms_dir, self.nvram_dir):
            try:
                ensure_directory(directory)
            except OSError as exc:
                raise ArtifactIOError(name, directory, exc) from exc

    def _image_is_valid(self, path: Path) -> bool:
        try:
            info = run(
                ["qemu-img", "info", "--output=json", str(path)],
                check=False,
                capture_output=True,
            )
        except FileNotFoundError:
            return False
        if info.returncode != 0:
            return False
        try:
            return json.loads(info.stdout).get("format") == "qcow2"
        except ValueError:
            return False

    def allocate_disk(self, name: str, size: str, purge: bool = False) -> bool:
        """Create the instance disk; returns False when an existing image was reused."""
        disk = self.paths(name).disk
        if disk.exists():
            if purge:
                log("INFO", f"Purging existing scratch disk {disk}")
                self._unlink(name, disk)
            elif self._image_is_valid(disk):
                log("INFO", f"Reusing existing disk image {disk}")
                return False
            else:
                log("WARN", f"Existing disk {disk} is not a valid qcow2 image; recreating")
                self._unlink(name, disk)

        log("INFO", f"Creating disk image {disk} ({size})")
        try:
            run(["qemu-img", "create", "-f", "qcow2", str(disk), size], capture_output=True)
        except FileNotFoundError as exc:
            raise DiskAllocationError(name, disk, "qemu-img not found") from exc
        except subprocess.CalledProcessError as exc:
            reason = (exc.stderr or "").strip() or f"qemu-img exited with status {exc.returncode}"
            raise DiskAllocationError(name, disk, reason) from exc

        try:
            os.chmod(disk, 0o600)
        except OSError as exc:
            raise ArtifactIOError(name, disk, exc) from exc
        self._hand_to_qemu(disk)
        return True

    def _hand_to_qemu(self, path: Path) -> None:
        try:
            shutil.chown(path, user=QEMU_USER, group=QEMU_GROUP)
        except (LookupError, PermissionError) as exc:
            log("DEBUG", f"Leaving ownership of {path} unchanged: {exc}")

    def write_definition(self, name: str, document: str) -> Path:
        path = self.paths(name).definition
        try:
            path.write_text(document)
        except OSError as exc:
            raise ArtifactIOError(name, path, exc) from exc
        return path

    def install_firmware_vars(self, name: str, source: Path) -> Path:
        destination = self.paths(name).nvram
        try:
            shutil.copyfile(source, destination)
            os.chmod(destination, 0o644)
        except OSError as exc:
            raise ArtifactIOError(name, destination, exc) from exc
        self._hand_to_qemu(destination)
        return destination

    def link_profile(self, name: str, profile: Path) -> Path:
        link = self.paths(name).profile_link
        try:
            if link.is_symlink() or link.exists():
                link.unlink()
            link.symlink_to(profile)
        except OSError as exc:
            raise ArtifactIOError(name, link, exc) from exc
        return link

    def remove(self, name: str, path: Path) -> bool:
        """Delete one artifact; False when it was already gone."""
        if not (path.exists() or path.is_symlink()):
            return False
        self._unlink(name, path)
        return True

    def _unlink(self, name: str, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise ArtifactIOError(name, path, exc) from exc
