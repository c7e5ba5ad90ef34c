"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from provisioner.models import (
    Acceleration,
    CapabilityRecord,
    DownloadTool,
    MonitorEndpoint,
    NetcatDialect,
    ProvisionConfig,
    RecipeParameters,
)


@pytest.fixture
def kvm_caps() -> CapabilityRecord:
    return CapabilityRecord(
        acceleration=Acceleration.NATIVE,
        download_tool=DownloadTool.WGET,
        netcat_dialect=NetcatDialect.BSD,
        hypervisor_path="/usr/bin/qemu-system-x86_64",
        is_darwin=False,
    )


@pytest.fixture
def tcg_caps() -> CapabilityRecord:
    return CapabilityRecord(
        acceleration=Acceleration.NONE,
        download_tool=DownloadTool.CURL,
        netcat_dialect=NetcatDialect.GNU,
        hypervisor_path="/usr/bin/qemu-system-x86_64",
        is_darwin=False,
    )


@pytest.fixture
def darwin_caps() -> CapabilityRecord:
    return CapabilityRecord(
        acceleration=Acceleration.NATIVE,
        download_tool=DownloadTool.CURL,
        netcat_dialect=NetcatDialect.OTHER,
        hypervisor_path="/opt/homebrew/bin/qemu-system-x86_64",
        is_darwin=True,
    )


@pytest.fixture
def recipe_params() -> RecipeParameters:
    return RecipeParameters(
        disk_size_gb=20,
        swap_size_gb=2,
        hostname="arch-qemu",
        username="archuser",
        ssh_public_key="ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIExample user@host",
        password_hash="$2b$12$abcdefghijklmnopqrstuu1234567890ABCDEFGHIJKLMNOPQRSTU",
    )


@pytest.fixture
def provision_config(tmp_path: Path, recipe_params: RecipeParameters) -> ProvisionConfig:
    media = tmp_path / "archlinux.iso"
    media.write_bytes(b"iso")
    return ProvisionConfig(
        install_media=media,
        media_url=None,
        media_sha256=None,
        install_dir=tmp_path / "arch-install",
        ovmf_dir=tmp_path / "ovmf",
        memory_mb=1024,
        monitor=MonitorEndpoint("localhost", 6661),
        headless=False,
        recipe=recipe_params,
        password="secret",
        prompt_delay=0.0,
        key_pace=0.0,
        poll_interval=0.0,
    )


# All environment variables that parse_env() reads; used to ensure a clean slate.
_PARSE_ENV_VARS = [
    "PROVISION_CONFIG",
    "INSTALL_MEDIA",
    "MEDIA_URL",
    "MEDIA_SHA256",
    "DISK_SIZE",
    "SWAP_SIZE",
    "GUEST_HOSTNAME",
    "GUEST_USER",
    "SSH_KEY",
    "GUEST_PASSWORD",
    "INSTALL_DIR",
    "OVMF_DIR",
    "MEMORY",
    "MONITOR_PORT",
    "PROMPT_DELAY",
    "KEY_PACE",
    "POLL_INTERVAL",
    "INSTALL_TIMEOUT",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear every variable parse_env() reads and run from an empty directory."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SSH_KEY", "ssh-ed25519 AAAAkey user@host")
