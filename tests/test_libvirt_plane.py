"""Tests for vmsandbox.libvirt_plane module."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import libvirt
import pytest

from vmsandbox.exceptions import ControlPlaneError
from vmsandbox.libvirt_plane import LibvirtControlPlane


def _error(message: str, code: int):
    exc = libvirt.libvirtError(message)
    exc.get_error_code = lambda: code
    exc.get_error_message = lambda: message
    return exc


@pytest.fixture
def plane():
    cp = LibvirtControlPlane("test:///default")
    cp.conn = MagicMock()
    return cp


class TestLookup:
    def test_exists(self, plane):
        assert plane.exists("sbx-1") is True
        plane.conn.lookupByName.assert_called_once_with("sbx-1")

    def test_missing_domain(self, plane):
        plane.conn.lookupByName.side_effect = _error("Domain not found", libvirt.VIR_ERR_NO_DOMAIN)
        assert plane.exists("sbx-1") is False
        assert plane.is_running("sbx-1") is False

    def test_other_errors_raise(self, plane):
        plane.conn.lookupByName.side_effect = _error("connection reset", libvirt.VIR_ERR_INTERNAL_ERROR)
        with pytest.raises(ControlPlaneError, match="connection reset") as exc:
            plane.exists("sbx-1")
        assert exc.value.name == "sbx-1"

    def test_not_connected(self):
        with pytest.raises(ControlPlaneError, match="not established"):
            LibvirtControlPlane().exists("sbx-1")


class TestOperations:
    def test_is_running(self, plane):
        plane.conn.lookupByName.return_value.isActive.return_value = 1
        assert plane.is_running("sbx-1") is True

    def test_stop(self, plane):
        plane.stop("sbx-1")
        plane.conn.lookupByName.return_value.destroy.assert_called_once_with()

    def test_undefine_with_nvram(self, plane):
        plane.undefine("sbx-1", purge_firmware=True)
        domain = plane.conn.lookupByName.return_value
        domain.undefineFlags.assert_called_once_with(libvirt.VIR_DOMAIN_UNDEFINE_NVRAM)

    def test_undefine_without_nvram(self, plane):
        plane.undefine("sbx-1", purge_firmware=False)
        plane.conn.lookupByName.return_value.undefine.assert_called_once_with()

    def test_define(self, plane):
        domain = plane.conn.defineXML.return_value
        domain.name.return_value = "sbx-1"
        domain.UUIDString.return_value = "6f1c1a52-3c1e-4e8a-9d55-0d7b3f0c9a11"
        registration = plane.define("<domain/>")
        assert registration.name == "sbx-1"
        assert registration.uuid == "6f1c1a52-3c1e-4e8a-9d55-0d7b3f0c9a11"

    def test_define_failure(self, plane):
        plane.conn.defineXML.side_effect = _error("XML error", libvirt.VIR_ERR_XML_ERROR)
        with pytest.raises(ControlPlaneError) as exc:
            plane.define("<domain/>")
        assert exc.value.operation == "define"

    def test_start_missing_domain(self, plane):
        plane.conn.lookupByName.side_effect = _error("Domain not found", libvirt.VIR_ERR_NO_DOMAIN)
        with pytest.raises(ControlPlaneError, match="domain not found"):
            plane.start("sbx-1")

    def test_list_definitions(self, plane):
        first, second = MagicMock(), MagicMock()
        first.XMLDesc.return_value = "<domain>a</domain>"
        second.XMLDesc.return_value = "<domain>b</domain>"
        plane.conn.listAllDomains.return_value = [first, second]
        assert plane.list_definitions() == ["<domain>a</domain>", "<domain>b</domain>"]


class TestConnection:
    def test_context_manager(self):
        with patch("vmsandbox.libvirt_plane.libvirt.open") as mock_open:
            with LibvirtControlPlane("test:///default") as cp:
                assert cp.conn is mock_open.return_value
            mock_open.return_value.close.assert_called_once_with()
        assert cp.conn is None

    def test_open_returns_none(self):
        with patch("vmsandbox.libvirt_plane.libvirt.open", return_value=None):
            with pytest.raises(ControlPlaneError, match="Failed to open"):
                LibvirtControlPlane("test:///default").connect()
