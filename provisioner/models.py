"""Data models for arch-vm-provisioner."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import NamedTuple, Optional, Tuple


class Acceleration(Enum):
    NONE = "none"
    NATIVE = "native"


class DownloadTool(Enum):
    CURL = "curl"
    WGET = "wget"
    UNAVAILABLE = "unavailable"


class NetcatDialect(Enum):
    BSD = "bsd"
    GNU = "gnu"
    OTHER = "other"


class MonitorEndpoint(NamedTuple):
    host: str
    port: int


# Ordered monitor key names, e.g. ("a", "shift-1", "ret").
KeySequence = Tuple[str, ...]


@dataclass(frozen=True)
class CapabilityRecord:
    acceleration: Acceleration
    download_tool: DownloadTool
    netcat_dialect: NetcatDialect
    hypervisor_path: str
    is_darwin: bool

    @property
    def accel_name(self) -> str:
        """QEMU accelerator matching this host."""
        if self.acceleration is Acceleration.NONE:
            return "tcg"
        return "hvf" if self.is_darwin else "kvm"


@dataclass
class RecipeParameters:
    disk_size_gb: int
    swap_size_gb: int
    hostname: str
    username: str
    ssh_public_key: str
    password_hash: str = ""


@dataclass(frozen=True)
class InstallerMedia:
    path: Path
    staging_dir: Path


@dataclass
class VMProcessHandle:
    pid: int
    endpoint: MonitorEndpoint
    pid_file: Path
    process: Optional[subprocess.Popen] = None


@dataclass
class ProvisionConfig:
    install_media: Path
    media_url: Optional[str]
    media_sha256: Optional[str]
    install_dir: Path
    ovmf_dir: Path
    memory_mb: int
    monitor: MonitorEndpoint
    headless: bool
    recipe: RecipeParameters
    password: str
    prompt_delay: float
    key_pace: float
    poll_interval: float
    install_timeout: Optional[float] = None
