"""UEFI firmware (OVMF) preparation."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict

from provisioner.constants import OVMF_FILES, OVMF_MIRROR
from provisioner.models import CapabilityRecord
from provisioner.utils import download_file, log


def prepare_firmware(work_dir: Path, ovmf_dir: Path, caps: CapabilityRecord) -> Dict[str, Path]:
    """Copy OVMF code/vars into work_dir, downloading whichever file is missing.

    The vars file is written by the guest, so every install gets its own copy.
    """
    prepared: Dict[str, Path] = {}
    for name in OVMF_FILES:
        source = ovmf_dir / name
        destination = work_dir / name
        if source.is_file():
            log("SUCCESS", f"Found {name}, copying.")
            shutil.copyfile(source, destination)
        else:
            log("INFO", f"{name} not found in {ovmf_dir}, fetching...")
            download_file(caps.download_tool, f"{OVMF_MIRROR}/{name}", destination, label=f"Downloading {name}")
        prepared[name] = destination
    return prepared
