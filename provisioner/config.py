"""Configuration loading and environment variable parsing for arch-vm-provisioner.

Values resolve in three layers: the edit-time constants in
:mod:`provisioner.constants`, then an optional ``provision.yaml`` settings
file, then environment variables.  Keys in the settings file are the
lower-cased environment variable names (``disk_size``, ``ssh_key``, ...).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from provisioner.constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_DISK_SIZE_GB,
    DEFAULT_HOSTNAME,
    DEFAULT_INSTALL_DIR,
    DEFAULT_INSTALL_MEDIA,
    DEFAULT_MEMORY_MB,
    DEFAULT_OVMF_DIR,
    DEFAULT_SWAP_SIZE_GB,
    DEFAULT_USERNAME,
    HOSTNAME_RE,
    KEY_PACE,
    MONITOR_HOST,
    MONITOR_PORT,
    POLL_INTERVAL,
    PROMPT_DELAY,
    SHA256_RE,
)
from provisioner.exceptions import ConfigError
from provisioner.models import MonitorEndpoint, ProvisionConfig, RecipeParameters
from provisioner.utils import (
    generate_password,
    get_env,
    hash_password,
    log,
    parse_float_env,
    parse_int_env,
)

SETTING_KEYS = {
    "install_media",
    "media_url",
    "media_sha256",
    "disk_size",
    "swap_size",
    "guest_hostname",
    "guest_user",
    "ssh_key",
    "guest_password",
    "install_dir",
    "ovmf_dir",
    "memory",
    "monitor_port",
    "prompt_delay",
    "key_pace",
    "poll_interval",
    "install_timeout",
}


def load_settings(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Read the optional YAML settings file.

    An explicitly requested file (argument or ``PROVISION_CONFIG``) must exist;
    the default ``provision.yaml`` in the working directory is optional.
    """
    explicit = config_path is not None or get_env("PROVISION_CONFIG") is not None
    if config_path is None:
        env_path = get_env("PROVISION_CONFIG")
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Settings file missing: {config_path}")
        return {}
    try:
        data = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"Settings file {config_path} contains invalid YAML: {exc}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {config_path} must contain a mapping, got {type(data).__name__}")
    unknown = sorted(set(data) - SETTING_KEYS)
    if unknown:
        log("WARN", f"Ignoring unknown settings in {config_path}: {', '.join(unknown)}")
    log("DEBUG", f"Loaded settings from {config_path}")
    return {key: value for key, value in data.items() if key in SETTING_KEYS}


def _default(settings: Dict[str, Any], key: str, fallback: Any) -> str:
    value = settings.get(key)
    if value is None:
        value = fallback
    return str(value)


def _setting(settings: Dict[str, Any], name: str, fallback: Any = "") -> str:
    raw = get_env(name, _default(settings, name.lower(), fallback))
    assert raw is not None
    return raw.strip()


def _require(name: str, value: str) -> str:
    if not value:
        raise ConfigError(f"{name} must not be empty")
    return value


def parse_env(headless: bool = False, settings: Optional[Dict[str, Any]] = None) -> ProvisionConfig:
    if settings is None:
        settings = load_settings()

    disk_size = parse_int_env("DISK_SIZE", _default(settings, "disk_size", DEFAULT_DISK_SIZE_GB))
    swap_size = parse_int_env("SWAP_SIZE", _default(settings, "swap_size", DEFAULT_SWAP_SIZE_GB))
    if swap_size >= disk_size:
        log(
            "WARN",
            f"SWAP_SIZE ({swap_size}G) is not smaller than DISK_SIZE ({disk_size}G); "
            "the guest install will likely fail",
        )
    memory_mb = parse_int_env("MEMORY", _default(settings, "memory", DEFAULT_MEMORY_MB), min_val=256)
    monitor_port = parse_int_env(
        "MONITOR_PORT", _default(settings, "monitor_port", MONITOR_PORT), min_val=1, max_val=65535
    )

    hostname = _require("GUEST_HOSTNAME", _setting(settings, "GUEST_HOSTNAME", DEFAULT_HOSTNAME))
    if not HOSTNAME_RE.match(hostname):
        log("WARN", f"GUEST_HOSTNAME '{hostname}' does not look like a valid hostname; passing it through")
    username = _require("GUEST_USER", _setting(settings, "GUEST_USER", DEFAULT_USERNAME))
    ssh_key = _setting(settings, "SSH_KEY")
    if not ssh_key:
        raise ConfigError(
            "SSH_KEY is empty. Paste your public key (e.g. ~/.ssh/id_ed25519.pub) into "
            "provision.yaml or export SSH_KEY, otherwise you cannot log in to the machine."
        )

    password = _setting(settings, "GUEST_PASSWORD")
    if not password:
        password = generate_password()
        log("INFO", "GUEST_PASSWORD not set; generated a random password for the guest user")

    media_url = _setting(settings, "MEDIA_URL") or None
    media_sha256 = _setting(settings, "MEDIA_SHA256").lower() or None
    if media_sha256 and not SHA256_RE.match(media_sha256):
        raise ConfigError("MEDIA_SHA256 must be a 64 character hex digest")

    install_timeout_raw = parse_int_env("INSTALL_TIMEOUT", _default(settings, "install_timeout", 0), min_val=0)
    install_timeout = float(install_timeout_raw) if install_timeout_raw else None

    recipe = RecipeParameters(
        disk_size_gb=disk_size,
        swap_size_gb=swap_size,
        hostname=hostname,
        username=username,
        ssh_public_key=ssh_key,
        password_hash=hash_password(password),
    )

    return ProvisionConfig(
        install_media=Path(_require("INSTALL_MEDIA", _setting(settings, "INSTALL_MEDIA", DEFAULT_INSTALL_MEDIA))),
        media_url=media_url,
        media_sha256=media_sha256,
        install_dir=Path(_require("INSTALL_DIR", _setting(settings, "INSTALL_DIR", DEFAULT_INSTALL_DIR))),
        ovmf_dir=Path(_setting(settings, "OVMF_DIR", DEFAULT_OVMF_DIR)),
        memory_mb=memory_mb,
        monitor=MonitorEndpoint(MONITOR_HOST, monitor_port),
        headless=headless,
        recipe=recipe,
        password=password,
        prompt_delay=parse_float_env("PROMPT_DELAY", _default(settings, "prompt_delay", PROMPT_DELAY)),
        key_pace=parse_float_env("KEY_PACE", _default(settings, "key_pace", KEY_PACE)),
        poll_interval=parse_float_env("POLL_INTERVAL", _default(settings, "poll_interval", POLL_INTERVAL)),
        install_timeout=install_timeout,
    )
