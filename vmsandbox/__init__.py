"""vm-sandbox package."""

__all__ = [
    "artifacts",
    "cli",
    "config",
    "constants",
    "controlplane",
    "exceptions",
    "hostprep",
    "identity",
    "libvirt_plane",
    "models",
    "provision",
    "teardown",
    "templates",
    "utils",
]
