"""Polymorphic hardware identity generation."""

from __future__ import annotations

import secrets
import uuid
from typing import Iterable

from vmsandbox.constants import (
    CHASSIS_SERIAL_LENGTH,
    DEFAULT_MAC_OUI,
    DISK_SERIAL_LENGTH,
    SERIAL_ALPHABET,
)
from vmsandbox.exceptions import IdentityCollision, IdentityGenerationError
from vmsandbox.models import Identity


def random_serial(length: int) -> str:
    """Uppercase alphanumeric serial, like those printed on physical boards and drives."""
    return "".join(secrets.choice(SERIAL_ALPHABET) for _ in range(length))


def vendor_mac(oui: str) -> str:
    """MAC address under a real vendor prefix instead of the 52:54:00 QEMU one."""
    prefix = [int(part, 16) for part in oui.split(":")]
    octets = prefix + list(secrets.token_bytes(3))
    return ":".join(f"{octet:02x}" for octet in octets)


class IdentityGenerator:
    def __init__(self, oui: str = DEFAULT_MAC_OUI) -> None:
        self.oui = oui

    def generate(self) -> Identity:
        # Each field is a separate draw from the OS CSPRNG.
        try:
            return Identity(
                uuid=str(uuid.uuid4()),
                mac=vendor_mac(self.oui),
                chassis_serial=random_serial(CHASSIS_SERIAL_LENGTH),
                disk_serial=random_serial(DISK_SERIAL_LENGTH),
            )
        except (OSError, NotImplementedError) as exc:
            raise IdentityGenerationError(f"Host random source unavailable: {exc}") from exc


def check_collisions(name: str, identity: Identity, definitions: Iterable[str]) -> None:
    """Fail if any identity field already appears in a registered domain definition."""
    for definition in definitions:
        haystack = definition.upper()
        for field_name, value in identity.fields():
            if value.upper() in haystack:
                raise IdentityCollision(name, field_name, value)
