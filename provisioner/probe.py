"""Host capability detection for arch-vm-provisioner."""

from __future__ import annotations

import platform
import shutil
import subprocess

from provisioner.constants import KVM_DEVICE, QEMU_BINARY, QEMU_IMG_BINARY
from provisioner.exceptions import MissingDependency
from provisioner.models import Acceleration, CapabilityRecord, DownloadTool, NetcatDialect
from provisioner.utils import log


def _is_darwin() -> bool:
    return platform.system() == "Darwin"


def _require_program(name: str, package: str) -> str:
    path = shutil.which(name)
    if path is None:
        raise MissingDependency(f"Couldn't find {name}. Install the \"{package}\" package.")
    log("SUCCESS", f"Found {name}.")
    return path


def _detect_download_tool() -> DownloadTool:
    """Prefer wget, fall back to curl."""
    if shutil.which("wget"):
        log("SUCCESS", "Found wget.")
        return DownloadTool.WGET
    if shutil.which("curl"):
        log("SUCCESS", "Found curl.")
        return DownloadTool.CURL
    raise MissingDependency("Couldn't find curl or wget. Install one of them.")


def _hvf_supported() -> bool:
    """Check the Hypervisor.framework capability flag (macOS only)."""
    try:
        result = subprocess.run(
            ["sysctl", "-n", "kern.hv_support"],
            capture_output=True,
            text=True,
            check=False,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0 and result.stdout.strip() == "1"


def _detect_acceleration(is_darwin: bool) -> Acceleration:
    if is_darwin:
        available = _hvf_supported()
    else:
        available = KVM_DEVICE.exists()
    if available:
        log("INFO", "Hardware acceleration available")
        return Acceleration.NATIVE
    log("WARN", "No hardware acceleration found; installing under software emulation (much slower)")
    return Acceleration.NONE


def _detect_netcat_dialect() -> NetcatDialect:
    """Classify nc by the first line of its help text.

    Help output lands on stdout for some builds and stderr for others, so
    both are checked.
    """
    try:
        result = subprocess.run(["nc", "-h"], capture_output=True, text=True, check=False, timeout=5)
    except (OSError, subprocess.TimeoutExpired):
        return NetcatDialect.OTHER
    first_line = ""
    for stream in (result.stdout, result.stderr):
        lines = [line for line in (stream or "").splitlines() if line.strip()]
        if lines:
            first_line = lines[0].strip()
            break
    if first_line.startswith("OpenBSD"):
        log("SUCCESS", "Found nc (OpenBSD).")
        return NetcatDialect.BSD
    if first_line.startswith("GNU"):
        log("INFO", "Applying GNU workaround for nc")
        return NetcatDialect.GNU
    log("DEBUG", f"Unrecognised nc dialect: {first_line[:60]!r}")
    return NetcatDialect.OTHER


def probe() -> CapabilityRecord:
    """Inspect the host and return its capability record.

    Only reads host state; raises MissingDependency when a required program
    is absent.
    """
    is_darwin = _is_darwin()
    if is_darwin:
        log("INFO", "Running on Darwin, assuming macOS")

    download_tool = _detect_download_tool()
    if is_darwin:
        log("INFO", "On macOS, assuming hdiutil exists")
        log("INFO", "On macOS, assuming netcat exists")
        dialect = NetcatDialect.OTHER
    else:
        _require_program("mkisofs", "cdrtools")
        _require_program("nc", "gnu-netcat")
        dialect = _detect_netcat_dialect()
    hypervisor_path = _require_program(QEMU_BINARY, "qemu")
    _require_program(QEMU_IMG_BINARY, "qemu")

    return CapabilityRecord(
        acceleration=_detect_acceleration(is_darwin),
        download_tool=download_tool,
        netcat_dialect=dialect,
        hypervisor_path=hypervisor_path,
        is_darwin=is_darwin,
    )
