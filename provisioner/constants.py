"""Global constants and path configuration for arch-vm-provisioner."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

# Edit-time defaults; each one can be overridden from provision.yaml or the environment.
DEFAULT_INSTALL_MEDIA = "archlinux-x86_64.iso"
DEFAULT_DISK_SIZE_GB = 20
DEFAULT_SWAP_SIZE_GB = 2
DEFAULT_HOSTNAME = "arch-qemu"
DEFAULT_USERNAME = "archuser"
DEFAULT_INSTALL_DIR = "arch-install"
DEFAULT_OVMF_DIR = "/usr/share/OVMF/x64"
DEFAULT_MEMORY_MB = 1024
DEFAULT_CONFIG_PATH = Path("provision.yaml")

MEDIA_DOWNLOAD_PAGE = "https://archlinux.org/download/"
OVMF_MIRROR = "https://github.com/clearlinux/common/raw/master"
OVMF_FILES = ("OVMF_CODE.fd", "OVMF_VARS.fd")

MONITOR_HOST = "localhost"
MONITOR_PORT = 6661
RUN_MONITOR_PORT = 3456
VNC_DISPLAY = ":1"

PROMPT_DELAY = 5.0
KEY_PACE = 0.5
POLL_INTERVAL = 1.0
LAUNCH_SETTLE = 1.0
TEARDOWN_WAIT = 10.0
OTHER_DIALECT_SESSION_TIMEOUT = 5.0

# Output directory layout
STAGING_DIR_NAME = "x"
RECIPE_ISO_NAME = "ia.iso"
ENTRY_SCRIPT_NAME = "ia.sh"
VARS_NAME = "vars"
INSTALL_VARS_NAME = "install-vars"
DISK_IMAGE_NAME = "arch.img"
RUN_SCRIPT_NAME = "run.sh"
QGA_SOCKET_NAME = "qga.sock"

PID_FILE = Path(tempfile.gettempdir()) / "arch-vm-provisioner-qemu.pid"

QEMU_BINARY = "qemu-system-x86_64"
QEMU_IMG_BINARY = "qemu-img"
KVM_DEVICE = Path("/dev/kvm")

BOOTSTRAP_COMMAND = (
    "mkdir x && mount -o ro /dev/sr1 x && cp x/ia.sh x/vars x/install-vars . "
    "&& chmod 755 ia.sh && ./ia.sh<ret>"
)
LIVENESS_COMMAND = "info block"

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

HOSTNAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]{0,62}$")
SHA256_RE = re.compile(r"^[0-9a-f]{64}$")
