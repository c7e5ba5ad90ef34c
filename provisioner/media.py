"""Install media, recipe image and disk image preparation."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List

from provisioner.constants import (
    DISK_IMAGE_NAME,
    ENTRY_SCRIPT_NAME,
    INSTALL_VARS_NAME,
    MEDIA_DOWNLOAD_PAGE,
    QEMU_IMG_BINARY,
    RECIPE_ISO_NAME,
    RUN_SCRIPT_NAME,
    STAGING_DIR_NAME,
    VARS_NAME,
)
from provisioner.exceptions import (
    DirectoryConflict,
    MediaAcquisitionFailure,
    MediaBuildFailure,
    ProvisionError,
)
from provisioner.models import CapabilityRecord, DownloadTool, InstallerMedia, ProvisionConfig, RecipeParameters
from provisioner.recipe import ENTRY_SCRIPT, install_vars_file, render_run_script, vars_file
from provisioner.utils import download_file, log, run, sha256_file


def _confirm(prompt: str) -> bool:
    try:
        answer = input(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def acquire_media(
    cfg: ProvisionConfig,
    caps: CapabilityRecord,
    confirm: Callable[[str], bool] = _confirm,
) -> Path:
    """Return the path of a present, verified install ISO."""
    media = cfg.install_media
    if not media.is_file():
        if not cfg.media_url:
            raise MediaAcquisitionFailure(
                f"No install media found at {media}. Set INSTALL_MEDIA to your ISO, "
                f"or download one from {MEDIA_DOWNLOAD_PAGE}"
            )
        if caps.download_tool is DownloadTool.UNAVAILABLE:
            raise MediaAcquisitionFailure(f"No install media found at {media} and no download tool available")
        if not confirm(f"Install media {media} not found. Download {cfg.media_url}? [y/N] "):
            raise MediaAcquisitionFailure(f"No install media found at {media} (download declined)")
        media.parent.mkdir(parents=True, exist_ok=True)
        download_file(caps.download_tool, cfg.media_url, media, label="Downloading install media")

    if cfg.media_sha256:
        log("INFO", f"Verifying checksum of {media.name}")
        actual = sha256_file(media)
        if actual != cfg.media_sha256:
            raise MediaAcquisitionFailure(
                f"Checksum mismatch for {media}: expected {cfg.media_sha256}, got {actual}"
            )
        log("SUCCESS", "Install media checksum verified")
    else:
        log("DEBUG", "MEDIA_SHA256 not set; skipping checksum verification")
    return media


def ensure_fresh_directory(path: Path) -> None:
    """Fail before touching anything if the output directory already exists."""
    if path.exists():
        raise DirectoryConflict(f"Install directory \"{path}\" exists, quitting.")


def create_install_directory(path: Path) -> None:
    log("INFO", f"Creating install directory {path}")
    ensure_fresh_directory(path)
    try:
        path.mkdir(parents=True)
    except OSError as exc:
        raise ProvisionError(f"Couldn't create {path}: {exc}")
    log("SUCCESS", f"Directory {path} created")


def _iso_command(caps: CapabilityRecord, work_dir: Path) -> List[str]:
    output = str(work_dir / RECIPE_ISO_NAME)
    staging = str(work_dir / STAGING_DIR_NAME)
    if caps.is_darwin:
        return ["hdiutil", "makehybrid", "-quiet", "-iso", "-joliet", "-o", output, staging]
    return ["mkisofs", "-quiet", "-r", "-V", "IA", "-o", output, staging]


def stage_recipe(params: RecipeParameters, work_dir: Path) -> Path:
    staging = work_dir / STAGING_DIR_NAME
    staging.mkdir(parents=True, exist_ok=True)
    entry = staging / ENTRY_SCRIPT_NAME
    entry.write_text(ENTRY_SCRIPT, encoding="utf-8")
    entry.chmod(0o755)
    (staging / VARS_NAME).write_text(vars_file(params), encoding="utf-8")
    (staging / INSTALL_VARS_NAME).write_text(install_vars_file(params), encoding="utf-8")
    return staging


def synthesize(params: RecipeParameters, work_dir: Path, caps: CapabilityRecord) -> InstallerMedia:
    """Build the read-only recipe ISO the guest mounts at /dev/sr1."""
    log("INFO", "Creating script install iso")
    staging = stage_recipe(params, work_dir)
    output = work_dir / RECIPE_ISO_NAME
    output.unlink(missing_ok=True)
    try:
        result = run(_iso_command(caps, work_dir), check=False, capture_output=True)
    except OSError as exc:
        raise MediaBuildFailure(f"Couldn't run the disc-image writer: {exc}")
    if result.returncode != 0:
        detail = (result.stderr or "").strip().splitlines()
        suffix = f": {detail[-1]}" if detail else ""
        raise MediaBuildFailure(f"Creating {output.name} failed (exit {result.returncode}){suffix}")
    log("SUCCESS", f"Created {output.name}")
    return InstallerMedia(path=output, staging_dir=staging)


def create_disk_image(work_dir: Path, size_gb: int) -> Path:
    disk = work_dir / DISK_IMAGE_NAME
    log("INFO", f"Creating virtual hard drive ({size_gb}GB)")
    result = run(
        [QEMU_IMG_BINARY, "create", "-f", "raw", str(disk), f"{size_gb}G"],
        check=False,
        capture_output=True,
    )
    if result.returncode != 0:
        raise MediaBuildFailure(f"qemu-img create failed (exit {result.returncode})")
    return disk


def write_run_script(work_dir: Path, caps: CapabilityRecord, headless: bool, memory_mb: int) -> Path:
    log("INFO", "Creating startup script for completed machine")
    script = work_dir / RUN_SCRIPT_NAME
    script.write_text(render_run_script(caps, headless, memory_mb), encoding="utf-8")
    script.chmod(0o755)
    return script
