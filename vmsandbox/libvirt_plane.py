"""libvirt implementation of the control plane."""

from __future__ import annotations

from typing import List, Optional

try:
    import libvirt  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit(f"libvirt python bindings not available: {exc}")

from vmsandbox.constants import DEFAULT_LIBVIRT_URI
from vmsandbox.controlplane import ControlPlane
from vmsandbox.exceptions import ControlPlaneError
from vmsandbox.models import Registration
from vmsandbox.utils import log


def _message(exc: "libvirt.libvirtError") -> str:
    return exc.get_error_message() if hasattr(exc, "get_error_message") else str(exc)


class LibvirtControlPlane(ControlPlane):
    def __init__(self, uri: str = DEFAULT_LIBVIRT_URI) -> None:
        self.uri = uri
        self.conn: Optional[libvirt.virConnect] = None

    def connect(self) -> None:
        try:
            self.conn = libvirt.open(self.uri)
        except libvirt.libvirtError as exc:
            raise ControlPlaneError("connect", None, f"{self.uri}: {_message(exc)}") from exc
        if self.conn is None:
            raise ControlPlaneError("connect", None, f"Failed to open libvirt connection to {self.uri}")

    def close(self) -> None:
        if self.conn is not None:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "LibvirtControlPlane":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _connection(self, operation: str, name: Optional[str]):
        if self.conn is None:
            raise ControlPlaneError(operation, name, "libvirt connection not established")
        return self.conn

    def _lookup(self, operation: str, name: str):
        """Domain handle, or None when libvirt has no domain by that name."""
        conn = self._connection(operation, name)
        try:
            return conn.lookupByName(name)
        except libvirt.libvirtError as exc:
            if exc.get_error_code() == libvirt.VIR_ERR_NO_DOMAIN:
                return None
            raise ControlPlaneError(operation, name, _message(exc)) from exc

    def _require(self, operation: str, name: str):
        domain = self._lookup(operation, name)
        if domain is None:
            raise ControlPlaneError(operation, name, "domain not found")
        return domain

    def exists(self, name: str) -> bool:
        return self._lookup("lookup", name) is not None

    def is_running(self, name: str) -> bool:
        domain = self._lookup("isActive", name)
        if domain is None:
            return False
        try:
            return bool(domain.isActive())
        except libvirt.libvirtError as exc:
            raise ControlPlaneError("isActive", name, _message(exc)) from exc

    def stop(self, name: str) -> None:
        domain = self._require("destroy", name)
        try:
            domain.destroy()
        except libvirt.libvirtError as exc:
            raise ControlPlaneError("destroy", name, _message(exc)) from exc
        log("DEBUG", f"Destroyed domain {name}")

    def undefine(self, name: str, purge_firmware: bool) -> None:
        domain = self._require("undefine", name)
        try:
            # NVRAM domains (UEFI) need the NVRAM flag to undefine
            if purge_firmware:
                domain.undefineFlags(libvirt.VIR_DOMAIN_UNDEFINE_NVRAM)
            else:
                domain.undefine()
        except libvirt.libvirtError as exc:
            raise ControlPlaneError("undefine", name, _message(exc)) from exc
        log("DEBUG", f"Undefined domain {name}")

    def define(self, definition: str) -> Registration:
        conn = self._connection("define", None)
        try:
            domain = conn.defineXML(definition)
        except libvirt.libvirtError as exc:
            raise ControlPlaneError("define", None, _message(exc)) from exc
        if domain is None:
            raise ControlPlaneError("define", None, "Failed to define libvirt domain")
        return Registration(name=domain.name(), uuid=domain.UUIDString())

    def start(self, name: str) -> None:
        domain = self._require("start", name)
        try:
            domain.create()
        except libvirt.libvirtError as exc:
            raise ControlPlaneError("start", name, _message(exc)) from exc

    def list_definitions(self) -> List[str]:
        conn = self._connection("listAllDomains", None)
        try:
            return [domain.XMLDesc(0) for domain in conn.listAllDomains(0)]
        except libvirt.libvirtError as exc:
            raise ControlPlaneError("listAllDomains", None, _message(exc)) from exc
