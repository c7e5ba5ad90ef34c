"""Custom exceptions for arch-vm-provisioner."""


class ProvisionError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class ConfigError(ProvisionError):
    """A configuration value is missing or malformed."""


class MissingDependency(ProvisionError):
    """A required external program is not installed."""


class MediaAcquisitionFailure(ProvisionError):
    """Install media or firmware is absent, declined, or failed verification."""


class DirectoryConflict(ProvisionError):
    """The output directory already exists."""


class MediaBuildFailure(ProvisionError):
    """Building the recipe image or the disk image failed."""


class MonitorUnreachable(ProvisionError):
    """A monitor session could not be opened or did not complete."""


class MonitorBusy(ProvisionError):
    """A monitor session was requested while another one is still open."""


class GuestTimeout(ProvisionError):
    """The guest did not power off within the configured install timeout."""


class Interrupted(ProvisionError):
    """The driver received SIGINT or SIGTERM."""
