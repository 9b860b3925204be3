"""Configuration loading and environment variable parsing for vm-sandbox."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from vmsandbox.constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_DISK_SIZE,
    DEFAULT_ISO_PATH,
    DEFAULT_LIBVIRT_URI,
    DEFAULT_MAC_OUI,
    DEFAULT_NVRAM_DIR,
    DEFAULT_QEMU_CONF,
    DEFAULT_SCRATCH_NAME,
    DEFAULT_STATE_DIR,
    DEFAULT_TEMPLATES_DIR,
    DEFAULT_VMS_DIR,
    FIRMWARE_FALLBACK,
    FIRMWARE_SEARCH_DIRS,
    INSTANCE_NAME_RE,
    OUI_RE,
    QEMU_OUI,
    TRUTHY,
)
from vmsandbox.exceptions import ConfigError
from vmsandbox.utils import get_env, log, validate_disk_size


@dataclass
class SandboxConfig:
    vms_dir: Path
    templates_dir: Path
    nvram_dir: Path
    state_dir: Path
    libvirt_uri: str
    disk_size: str
    mac_oui: str
    scratch_name: str
    # Purge-and-recreate an existing disk only for the scratch instance.
    purge_scratch_disk: bool
    default_iso_path: Path
    firmware_search_dirs: Tuple[Path, ...]
    firmware_fallback: Path
    qemu_conf: Path
    disable_security_driver: bool

    @property
    def audit_log(self) -> Path:
        return self.state_dir / "audit.log"


def load_config_file(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Read the optional YAML config file; a missing file yields an empty mapping."""
    if config_path is None:
        override = get_env("SANDBOX_CONFIG")
        config_path = Path(override) if override else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        log("DEBUG", f"No config file at {config_path}; using defaults")
        return {}
    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must contain a mapping at the top level")
    return data


def _setting(file_cfg: Dict[str, Any], env_name: str, default: Any) -> Any:
    raw = get_env(env_name)
    if raw is not None and raw.strip():
        return raw.strip()
    return file_cfg.get(env_name.lower(), default)


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY
    if isinstance(value, int):
        return bool(value)
    raise ConfigError(f"{name} must be a boolean (got {value!r})")


def _as_path_list(value: Any) -> Tuple[Path, ...]:
    if isinstance(value, str):
        items: List[str] = [part for part in value.split(":") if part.strip()]
    elif isinstance(value, (list, tuple)):
        items = [str(part) for part in value]
    else:
        raise ConfigError(f"FIRMWARE_SEARCH_DIRS must be a list or colon-separated string (got {value!r})")
    return tuple(Path(item.strip()) for item in items)


def validate_oui(raw: str) -> str:
    oui = raw.strip().upper()
    if not OUI_RE.match(oui):
        raise ConfigError(f"Invalid MAC_OUI '{raw}'. Use three hex octets, e.g. 'F0:2F:74'")
    if oui == QEMU_OUI:
        raise ConfigError(f"MAC_OUI {QEMU_OUI} is the QEMU/KVM default and is trivially fingerprinted")
    if int(oui[:2], 16) & 0x01:
        raise ConfigError(f"MAC_OUI '{raw}' is a multicast prefix")
    return oui


def validate_instance_name(name: str) -> str:
    if not INSTANCE_NAME_RE.match(name):
        raise ConfigError(
            f"Invalid instance name '{name}'. Use letters, digits, '.', '_' or '-' (no leading punctuation)"
        )
    return name


def load_config(config_path: Optional[Path] = None) -> SandboxConfig:
    file_cfg = load_config_file(config_path)

    state_dir = Path(str(_setting(file_cfg, "STATE_DIR", DEFAULT_STATE_DIR)))
    disk_size = validate_disk_size(str(_setting(file_cfg, "DISK_SIZE", DEFAULT_DISK_SIZE)))
    mac_oui = validate_oui(str(_setting(file_cfg, "MAC_OUI", DEFAULT_MAC_OUI)))
    scratch_name = validate_instance_name(str(_setting(file_cfg, "SCRATCH_NAME", DEFAULT_SCRATCH_NAME)))

    return SandboxConfig(
        vms_dir=Path(str(_setting(file_cfg, "VMS_DIR", DEFAULT_VMS_DIR))),
        templates_dir=Path(str(_setting(file_cfg, "TEMPLATES_DIR", DEFAULT_TEMPLATES_DIR))),
        nvram_dir=Path(str(_setting(file_cfg, "NVRAM_DIR", DEFAULT_NVRAM_DIR))),
        state_dir=state_dir,
        libvirt_uri=str(_setting(file_cfg, "LIBVIRT_URI", DEFAULT_LIBVIRT_URI)),
        disk_size=disk_size,
        mac_oui=mac_oui,
        scratch_name=scratch_name,
        purge_scratch_disk=_as_bool("PURGE_SCRATCH_DISK", _setting(file_cfg, "PURGE_SCRATCH_DISK", True)),
        default_iso_path=Path(str(_setting(file_cfg, "DEFAULT_ISO_PATH", DEFAULT_ISO_PATH))),
        firmware_search_dirs=_as_path_list(_setting(file_cfg, "FIRMWARE_SEARCH_DIRS", list(FIRMWARE_SEARCH_DIRS))),
        firmware_fallback=Path(str(_setting(file_cfg, "FIRMWARE_FALLBACK", FIRMWARE_FALLBACK))),
        qemu_conf=Path(str(_setting(file_cfg, "QEMU_CONF", DEFAULT_QEMU_CONF))),
        disable_security_driver=_as_bool(
            "DISABLE_SECURITY_DRIVER", _setting(file_cfg, "DISABLE_SECURITY_DRIVER", False)
        ),
    )
