"""Utility functions for arch-vm-provisioner."""

from __future__ import annotations

import hashlib
import os
import secrets
import string
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

try:
    import bcrypt  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("bcrypt is required but not installed") from exc

from provisioner.constants import _LOG_VERBOSE
from provisioner.exceptions import ConfigError, MediaAcquisitionFailure
from provisioner.models import DownloadTool


def log(level: str, message: str) -> None:
    """Lightweight structured logging with one coloured line per message."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def parse_int_env(name: str, default: str, min_val: int = 1, max_val: Optional[int] = None) -> int:
    raw = get_env(name, default)
    assert raw is not None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ConfigError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ConfigError(f"{name} must be <= {max_val} (got {value})")
    return value


def parse_float_env(name: str, default: str, min_val: float = 0.0) -> float:
    raw = get_env(name, default)
    assert raw is not None
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number (got '{raw}')")
    if value < min_val:
        raise ConfigError(f"{name} must be >= {min_val} (got {value})")
    return value


def has_controlling_tty() -> bool:
    """Return True if both stdin and stdout are attached to a TTY."""
    for stream in (sys.stdin, sys.stdout):
        try:
            if not stream.isatty():
                return False
        except (AttributeError, ValueError):
            return False
    return True


def generate_password(length: int = 16) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def hash_password(password: str) -> str:
    """Generate a bcrypt hash the guest can hand to usermod -p."""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def sha256_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def download_command(tool: DownloadTool, url: str, destination: Path) -> List[str]:
    if tool is DownloadTool.WGET:
        return ["wget", "--quiet", "--show-progress", "-O", str(destination), url]
    if tool is DownloadTool.CURL:
        return ["curl", "--progress-bar", "-Lo", str(destination), url]
    raise MediaAcquisitionFailure(f"No download tool available to fetch {url}")


def download_file(tool: DownloadTool, url: str, destination: Path, label: str = "Downloading") -> None:
    """Fetch url with the probed download tool.

    The tool writes into a temporary file beside destination, which is only
    renamed into place once the download has finished.
    """
    log("INFO", f"{label}: {url}")
    with tempfile.NamedTemporaryFile(delete=False, dir=destination.parent, suffix=".part") as tmp:
        tmp_path = Path(tmp.name)
    try:
        result = run(download_command(tool, url, tmp_path), check=False)
        if result.returncode != 0:
            raise MediaAcquisitionFailure(f"Failed to download {url} (exit {result.returncode})")
        tmp_path.replace(destination)
        log("SUCCESS", f"Downloaded {destination.name}")
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


def run(cmd: List[str], check: bool = True, **kwargs) -> subprocess.CompletedProcess:
    """Run command with logging."""
    log("DEBUG", f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, check=check, text=True, **kwargs)
    return result
