"""Provisioning pipeline: template + fresh identity -> defined libvirt domain."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from vmsandbox.artifacts import ArtifactStore, find_firmware_vars
from vmsandbox.config import SandboxConfig, validate_instance_name
from vmsandbox.constants import (
    PLACEHOLDER_DISK_SERIAL,
    PLACEHOLDER_ISO_PATH,
    PLACEHOLDER_MAC,
    PLACEHOLDER_NAME,
    PLACEHOLDER_NVRAM_DIR,
    PLACEHOLDER_SERIAL,
    PLACEHOLDER_UUID,
    PLACEHOLDER_VMS_DIR,
)
from vmsandbox.controlplane import ControlPlane
from vmsandbox.exceptions import AlreadyExists, ControlPlaneError
from vmsandbox.identity import IdentityGenerator, check_collisions
from vmsandbox.models import Identity, InstanceState, VMInstance
from vmsandbox.templates import TemplateCatalog, render_definition
from vmsandbox.utils import log


def default_instance_name(template_key: str) -> str:
    return f"{template_key}-sandbox"


class Provisioner:
    def __init__(
        self,
        cfg: SandboxConfig,
        control_plane: ControlPlane,
        catalog: Optional[TemplateCatalog] = None,
        store: Optional[ArtifactStore] = None,
        identities: Optional[IdentityGenerator] = None,
    ) -> None:
        self.cfg = cfg
        self.control_plane = control_plane
        self.catalog = catalog or TemplateCatalog(cfg.templates_dir)
        self.store = store or ArtifactStore(cfg.vms_dir, cfg.nvram_dir)
        self.identities = identities or IdentityGenerator(cfg.mac_oui)

    def provision(
        self,
        template_key: str,
        name: Optional[str] = None,
        iso_path: Optional[Union[str, Path]] = None,
    ) -> VMInstance:
        name = validate_instance_name(name or default_instance_name(template_key))
        iso = Path(iso_path) if iso_path else self.cfg.default_iso_path

        if self.control_plane.exists(name):
            raise AlreadyExists(name)

        template = self.catalog.resolve(template_key)

        if not iso.exists():
            log("WARN", f"ISO not found at {iso}; attach installation media before first boot")

        identity = self.identities.generate()
        check_collisions(name, identity, self.control_plane.list_definitions())
        instance = VMInstance(
            template_key=template.key,
            name=name,
            identity=identity,
            paths=self.store.paths(name),
            iso_path=iso,
        )
        log("INFO", f"Generating VM: {name} (Template: {template.key})")
        log("INFO", f"  UUID:   {identity.uuid}")
        log("INFO", f"  MAC:    {identity.mac}")
        log("INFO", f"  Serial: {identity.chassis_serial}")
        log("DEBUG", f"  Disk serial: {identity.disk_serial}")

        self.store.prepare(name)
        purge = self.cfg.purge_scratch_disk and name == self.cfg.scratch_name
        self.store.allocate_disk(name, self.cfg.disk_size, purge=purge)

        document = render_definition(template, name, self._substitutions(name, iso, identity))
        self.store.write_definition(name, document)

        vars_template = find_firmware_vars(name, self.cfg.firmware_search_dirs, self.cfg.firmware_fallback)
        self.store.install_firmware_vars(name, vars_template)

        log("INFO", f"Defining VM {name} in libvirt...")
        try:
            registration = self.control_plane.define(document)
        except ControlPlaneError as exc:
            log(
                "WARN",
                f"Artifacts left on disk for {name}: {instance.paths.disk}, {instance.paths.definition}, "
                f"{instance.paths.nvram}. Retry or run teardown {name}.",
            )
            raise ControlPlaneError("define", name, exc.cause) from exc
        log("DEBUG", f"Registered {registration.name} ({registration.uuid})")

        if template.profile_path is not None:
            link = self.store.link_profile(name, template.profile_path)
            log("INFO", f"Linked introspection profile {link} -> {template.profile_path}")

        instance.state = InstanceState.DEFINED
        log("SUCCESS", f"Defined VM {name}. Start it with: vm-sandbox start {name}")
        return instance

    def _substitutions(self, name: str, iso: Path, identity: Identity) -> dict:
        return {
            PLACEHOLDER_VMS_DIR: str(self.cfg.vms_dir),
            PLACEHOLDER_ISO_PATH: str(iso),
            PLACEHOLDER_NAME: name,
            PLACEHOLDER_UUID: identity.uuid,
            PLACEHOLDER_MAC: identity.mac,
            PLACEHOLDER_SERIAL: identity.chassis_serial,
            PLACEHOLDER_DISK_SERIAL: identity.disk_serial,
            PLACEHOLDER_NVRAM_DIR: str(self.cfg.nvram_dir),
        }
