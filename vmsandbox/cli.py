"""CLI entry points for vm-sandbox."""

from __future__ import annotations

import argparse
import subprocess
from contextlib import ExitStack
from typing import List, Optional

from vmsandbox.config import SandboxConfig, load_config, validate_instance_name
from vmsandbox.controlplane import ControlPlane, UnavailableControlPlane
from vmsandbox.exceptions import ControlPlaneError, SandboxError
from vmsandbox.hostprep import ensure_security_driver_disabled
from vmsandbox.models import STEP_FAILED
from vmsandbox.provision import Provisioner
from vmsandbox.teardown import Teardown
from vmsandbox.templates import TemplateCatalog
from vmsandbox.utils import command_available, log

PROVISION_USAGE = "Usage: vm-sandbox provision <template-name> [vm-name] [iso-path]"


def _connect(cfg: SandboxConfig):
    """Open the libvirt control plane; imported lazily so --list works without bindings."""
    from vmsandbox.libvirt_plane import LibvirtControlPlane

    return LibvirtControlPlane(cfg.libvirt_uri)


def list_templates(catalog: TemplateCatalog) -> None:
    """Print the template catalog."""
    print("Available templates:")
    keys = catalog.keys()
    if not keys:
        print("  (No templates found)")
        return
    max_key = max(len(k) for k in keys)
    for key in keys:
        template = catalog.resolve(key)
        extra = "  (introspection profile)" if template.profile_path is not None else ""
        print(f"  {key:<{max_key}}{extra}")


def launch_viewer(name: str) -> subprocess.Popen:
    if not command_available("virt-viewer"):
        raise SandboxError("virt-viewer not found. Please install it (sudo apt install virt-viewer).")
    log("INFO", "Launching GUI viewer...")
    return subprocess.Popen(["virt-viewer", "--attach", name])


def start_instance(control_plane: ControlPlane, name: str) -> bool:
    """Start the domain unless it is already running; True when a start was issued."""
    if control_plane.is_running(name):
        log("INFO", f"VM {name} is already running.")
        return False
    log("INFO", f"Starting VM: {name}")
    control_plane.start(name)
    log("SUCCESS", f"VM {name} started")
    return True


def cmd_provision(cfg: SandboxConfig, args: argparse.Namespace) -> int:
    catalog = TemplateCatalog(cfg.templates_dir)
    if args.list or args.help or not args.template:
        list_templates(catalog)
        print()
        print(PROVISION_USAGE)
        return 0

    if cfg.disable_security_driver:
        ensure_security_driver_disabled(cfg.qemu_conf, cfg.audit_log)

    with _connect(cfg) as control_plane:
        Provisioner(cfg, control_plane, catalog=catalog).provision(args.template, args.name, args.iso)
    return 0


def cmd_start(cfg: SandboxConfig, args: argparse.Namespace) -> int:
    name = validate_instance_name(args.name)
    with _connect(cfg) as control_plane:
        start_instance(control_plane, name)
    if args.gui:
        launch_viewer(name)
    return 0


def cmd_teardown(cfg: SandboxConfig, args: argparse.Namespace) -> int:
    name = validate_instance_name(args.name or cfg.scratch_name)
    with ExitStack() as stack:
        try:
            control_plane: ControlPlane = stack.enter_context(_connect(cfg))
        except ControlPlaneError as exc:
            log("WARN", f"{exc}; removing on-disk artifacts only")
            control_plane = UnavailableControlPlane(exc)
        report = Teardown(cfg, control_plane).teardown(name)
    for step in report.steps:
        marker = "!" if step.outcome == STEP_FAILED else "-"
        log("DEBUG", f"{marker} {step.step}: {step.outcome}")
    return 0 if report.ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vm-sandbox", description="Polymorphic libvirt sandbox manager")
    sub = parser.add_subparsers(dest="command")

    provision = sub.add_parser("provision", add_help=False, help="Define a new sandbox from a template")
    provision.add_argument("template", nargs="?")
    provision.add_argument("name", nargs="?")
    provision.add_argument("iso", nargs="?")
    provision.add_argument("--list", action="store_true", help="List templates and exit")
    provision.add_argument("-h", "--help", action="store_true", help="List templates and usage")
    provision.set_defaults(handler=cmd_provision)

    start = sub.add_parser("start", help="Start a defined sandbox")
    start.add_argument("--gui", action="store_true", help="Attach virt-viewer after starting")
    start.add_argument("name")
    start.set_defaults(handler=cmd_start)

    teardown = sub.add_parser("teardown", help="Destroy a sandbox and reclaim its artifacts")
    teardown.add_argument("name", nargs="?", help="Defaults to the scratch sandbox name")
    teardown.set_defaults(handler=cmd_teardown)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1

    try:
        cfg = load_config()
        return args.handler(cfg, args)
    except SandboxError as exc:
        log("ERROR", str(exc))
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
