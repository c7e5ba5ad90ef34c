"""Tests for provisioner.firmware module."""

from __future__ import annotations

from unittest.mock import patch

from provisioner.firmware import prepare_firmware
from provisioner.models import DownloadTool


def test_copies_local_firmware(kvm_caps, tmp_path):
    ovmf = tmp_path / "ovmf"
    ovmf.mkdir()
    (ovmf / "OVMF_CODE.fd").write_bytes(b"code")
    (ovmf / "OVMF_VARS.fd").write_bytes(b"vars")
    work = tmp_path / "work"
    work.mkdir()

    with patch("provisioner.firmware.download_file") as mock_download:
        prepared = prepare_firmware(work, ovmf, kvm_caps)

    mock_download.assert_not_called()
    assert prepared == {"OVMF_CODE.fd": work / "OVMF_CODE.fd", "OVMF_VARS.fd": work / "OVMF_VARS.fd"}
    assert (work / "OVMF_CODE.fd").read_bytes() == b"code"
    assert (work / "OVMF_VARS.fd").read_bytes() == b"vars"


def test_downloads_missing_files(tcg_caps, tmp_path):
    ovmf = tmp_path / "ovmf"
    ovmf.mkdir()
    (ovmf / "OVMF_CODE.fd").write_bytes(b"code")
    work = tmp_path / "work"
    work.mkdir()

    with patch("provisioner.firmware.download_file") as mock_download:
        prepare_firmware(work, ovmf, tcg_caps)

    mock_download.assert_called_once()
    tool, url, destination = mock_download.call_args[0]
    assert tool is DownloadTool.CURL
    assert url == "https://github.com/clearlinux/common/raw/master/OVMF_VARS.fd"
    assert destination == work / "OVMF_VARS.fd"
