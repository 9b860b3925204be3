"""Global constants and path configuration for vm-sandbox."""

from __future__ import annotations

import os
import re
from pathlib import Path

DEFAULT_CONFIG_PATH = Path("/etc/vm-sandbox/config.yaml")

DEFAULT_VMS_DIR = Path("/var/lib/vm-sandbox/vms")
DEFAULT_TEMPLATES_DIR = Path("/usr/share/vm-sandbox/templates")
DEFAULT_STATE_DIR = Path("/var/lib/vm-sandbox")
DEFAULT_NVRAM_DIR = Path("/var/lib/libvirt/qemu/nvram")
DEFAULT_QEMU_CONF = Path("/etc/libvirt/qemu.conf")
DEFAULT_LIBVIRT_URI = "qemu:///system"

DEFAULT_DISK_SIZE = "64G"
DEFAULT_ISO_PATH = Path("/var/lib/vm-sandbox/isos/install.iso")

# Default-named disposable sandbox; teardown targets it when no name is given.
DEFAULT_SCRATCH_NAME = "sandbox-001"

# ASUS. Avoids the 52:54:00 QEMU signature that guests can fingerprint.
DEFAULT_MAC_OUI = "F0:2F:74"
QEMU_OUI = "52:54:00"
OUI_RE = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){2}$")

SERIAL_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CHASSIS_SERIAL_LENGTH = 15
DISK_SERIAL_LENGTH = 12

FIRMWARE_SEARCH_DIRS = (
    Path("/usr/share/OVMF"),
    Path("/usr/share/edk2/ovmf"),
    Path("/usr/share/qemu"),
)
FIRMWARE_SECURE_GLOB = "OVMF_VARS*ms.fd"
FIRMWARE_FALLBACK = Path("/usr/share/OVMF/OVMF_VARS_4M.fd")

TEMPLATE_SUFFIX = ".xml"
PROFILE_SUFFIX = ".json"
DISK_SUFFIX = ".qcow2"
NVRAM_SUFFIX = "_VARS.fd"

# Substitution tokens understood by the renderer, replaced verbatim.
PLACEHOLDER_VMS_DIR = "REPLACE_VMS_DIR"
PLACEHOLDER_ISO_PATH = "REPLACE_ISO_PATH"
PLACEHOLDER_NAME = "REPLACE_NAME"
PLACEHOLDER_UUID = "REPLACE_UUID"
PLACEHOLDER_MAC = "REPLACE_MAC"
PLACEHOLDER_SERIAL = "REPLACE_SERIAL"
PLACEHOLDER_DISK_SERIAL = "REPLACE_DISK_SERIAL"
PLACEHOLDER_NVRAM_DIR = "REPLACE_NVRAM_DIR"
PLACEHOLDERS = (
    PLACEHOLDER_VMS_DIR,
    PLACEHOLDER_ISO_PATH,
    PLACEHOLDER_NAME,
    PLACEHOLDER_UUID,
    PLACEHOLDER_MAC,
    PLACEHOLDER_SERIAL,
    PLACEHOLDER_DISK_SERIAL,
    PLACEHOLDER_NVRAM_DIR,
)
PLACEHOLDER_RE = re.compile(r"REPLACE_[A-Z0-9_]+")

TRUTHY = {"1", "true", "yes", "on"}
DISK_SIZE_RE = re.compile(r"^\d+[KMGTkmgt]?$")
INSTANCE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

QEMU_USER = "libvirt-qemu"
QEMU_GROUP = "kvm"
SECURITY_DRIVER_LINE = 'security_driver = "none"'

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY
