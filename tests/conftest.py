"""Shared test fixtures: libvirt stub injection, an in-memory control plane, config and qemu-img stand-in."""

from __future__ import annotations

import json
import subprocess
import sys
import types
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import MagicMock
from xml.etree.ElementTree import fromstring


def _install_libvirt_stub():
    """Inject a minimal libvirt stub into sys.modules if the real library is not available."""
    if "libvirt" in sys.modules:
        return

    try:
        import libvirt  # noqa: F401

        return  # real library available
    except (ImportError, SystemExit):
        pass

    stub = types.ModuleType("libvirt")

    class libvirtError(Exception):
        def get_error_message(self):
            return str(self)

        def get_error_code(self):
            return stub.VIR_ERR_INTERNAL_ERROR

    stub.libvirtError = libvirtError
    stub.open = MagicMock(return_value=MagicMock())
    stub.VIR_ERR_INTERNAL_ERROR = 1
    stub.VIR_ERR_XML_ERROR = 27
    stub.VIR_ERR_NO_DOMAIN = 42
    stub.VIR_DOMAIN_UNDEFINE_NVRAM = 4

    # virConnect / virDomain stubs
    stub.virConnect = MagicMock
    stub.virDomain = MagicMock

    sys.modules["libvirt"] = stub


_install_libvirt_stub()

import pytest  # noqa: E402

from vmsandbox.config import SandboxConfig  # noqa: E402
from vmsandbox.controlplane import ControlPlane  # noqa: E402
from vmsandbox.exceptions import ControlPlaneError  # noqa: E402
from vmsandbox.models import Registration  # noqa: E402

WIN11_TEMPLATE = """<domain type="kvm">
  <name>REPLACE_NAME</name>
  <uuid>REPLACE_UUID</uuid>
  <sysinfo type="smbios">
    <system><entry name="serial">REPLACE_SERIAL</entry></system>
  </sysinfo>
  <os>
    <nvram>REPLACE_NVRAM_DIR/REPLACE_NAME_VARS.fd</nvram>
  </os>
  <devices>
    <disk type="file" device="disk">
      <source file="REPLACE_VMS_DIR/REPLACE_NAME.qcow2"/>
      <serial>REPLACE_DISK_SERIAL</serial>
    </disk>
    <disk type="file" device="cdrom">
      <source file="REPLACE_ISO_PATH"/>
    </disk>
    <interface type="network">
      <mac address="REPLACE_MAC"/>
    </interface>
  </devices>
</domain>
"""


class FakeControlPlane(ControlPlane):
    """Keeps domains in a dict; ``fail`` maps an operation name to an error message."""

    def __init__(self) -> None:
        self.domains: Dict[str, Dict[str, object]] = {}
        self.fail: Dict[str, str] = {}
        self.calls: List[tuple] = []

    def _maybe_fail(self, operation: str, name: Optional[str]) -> None:
        self.calls.append((operation, name))
        if operation in self.fail:
            raise ControlPlaneError(operation, name, self.fail[operation])

    def exists(self, name: str) -> bool:
        self._maybe_fail("exists", name)
        return name in self.domains

    def is_running(self, name: str) -> bool:
        self._maybe_fail("is_running", name)
        return bool(self.domains.get(name, {}).get("running", False))

    def stop(self, name: str) -> None:
        self._maybe_fail("stop", name)
        self.domains[name]["running"] = False

    def undefine(self, name: str, purge_firmware: bool) -> None:
        self._maybe_fail("undefine", name)
        del self.domains[name]

    def define(self, definition: str) -> Registration:
        root = fromstring(definition)
        name = root.findtext("name")
        self._maybe_fail("define", name)
        if name in self.domains:
            raise ControlPlaneError("define", name, "domain already exists")
        uuid = root.findtext("uuid") or ""
        self.domains[name] = {"xml": definition, "running": False}
        return Registration(name=name, uuid=uuid)

    def start(self, name: str) -> None:
        self._maybe_fail("start", name)
        if name not in self.domains:
            raise ControlPlaneError("start", name, "domain not found")
        self.domains[name]["running"] = True

    def list_definitions(self) -> List[str]:
        self._maybe_fail("list_definitions", None)
        return [str(d["xml"]) for d in self.domains.values()]


@pytest.fixture
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def templates_dir(tmp_path) -> Path:
    path = tmp_path / "templates"
    path.mkdir()
    (path / "win11.xml").write_text(WIN11_TEMPLATE)
    (path / "win10.xml").write_text(WIN11_TEMPLATE)
    return path


@pytest.fixture
def firmware_dir(tmp_path) -> Path:
    path = tmp_path / "ovmf"
    path.mkdir()
    (path / "OVMF_VARS_4M.ms.fd").write_bytes(b"secure-vars")
    (path / "OVMF_VARS_4M.fd").write_bytes(b"plain-vars")
    return path


@pytest.fixture
def sandbox_config(tmp_path, templates_dir, firmware_dir) -> SandboxConfig:
    vms_dir = tmp_path / "vms"
    nvram_dir = tmp_path / "nvram"
    vms_dir.mkdir()
    nvram_dir.mkdir()
    return SandboxConfig(
        vms_dir=vms_dir,
        templates_dir=templates_dir,
        nvram_dir=nvram_dir,
        state_dir=tmp_path / "state",
        libvirt_uri="test:///default",
        disk_size="64G",
        mac_oui="F0:2F:74",
        scratch_name="sandbox-001",
        purge_scratch_disk=True,
        default_iso_path=tmp_path / "isos" / "install.iso",
        firmware_search_dirs=(firmware_dir,),
        firmware_fallback=firmware_dir / "OVMF_VARS_4M.fd",
        qemu_conf=tmp_path / "qemu.conf",
        disable_security_driver=False,
    )


@pytest.fixture
def fake_qemu_img(monkeypatch):
    """Replace qemu-img in the artifact store: ``create`` writes a marker file, ``info`` reports qcow2."""
    calls: List[List[str]] = []

    def _run(cmd, check=True, **kwargs):
        calls.append(cmd)
        if cmd[:2] == ["qemu-img", "create"]:
            Path(cmd[4]).write_bytes(b"QFI\xfb" + cmd[5].encode())
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")
        if cmd[:2] == ["qemu-img", "info"]:
            path = Path(cmd[-1])
            if path.read_bytes().startswith(b"QFI\xfb"):
                return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps({"format": "qcow2"}), stderr="")
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="not a qcow2 image")
        raise AssertionError(f"unexpected command {cmd}")

    monkeypatch.setattr("vmsandbox.artifacts.run", _run)
    return calls


@pytest.fixture
def clean_env(monkeypatch):
    """Clear all environment variables that load_config() reads."""
    for key in [
        "SANDBOX_CONFIG",
        "VMS_DIR",
        "TEMPLATES_DIR",
        "NVRAM_DIR",
        "STATE_DIR",
        "LIBVIRT_URI",
        "DISK_SIZE",
        "MAC_OUI",
        "SCRATCH_NAME",
        "PURGE_SCRATCH_DISK",
        "DEFAULT_ISO_PATH",
        "FIRMWARE_SEARCH_DIRS",
        "FIRMWARE_FALLBACK",
        "QEMU_CONF",
        "DISABLE_SECURITY_DRIVER",
    ]:
        monkeypatch.delenv(key, raising=False)
