"""arch-vm-provisioner package."""

__all__ = [
    "cli",
    "config",
    "constants",
    "exceptions",
    "firmware",
    "guard",
    "keys",
    "media",
    "models",
    "monitor",
    "poller",
    "probe",
    "recipe",
    "utils",
    "vm",
]
