"""Tests for provisioner.media module."""

from __future__ import annotations

import hashlib
import os
import subprocess
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

import pytest

from provisioner.exceptions import (
    DirectoryConflict,
    Interrupted,
    MediaAcquisitionFailure,
    MediaBuildFailure,
)
from provisioner.media import (
    _iso_command,
    acquire_media,
    create_disk_image,
    create_install_directory,
    ensure_fresh_directory,
    stage_recipe,
    synthesize,
    write_run_script,
)
from provisioner.models import DownloadTool


def _completed(returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout="", stderr=stderr)


class TestAcquireMedia:
    def test_present_media_without_checksum(self, provision_config, kvm_caps):
        assert acquire_media(provision_config, kvm_caps) == provision_config.install_media

    def test_checksum_match(self, provision_config, kvm_caps):
        digest = hashlib.sha256(b"iso").hexdigest()
        cfg = replace(provision_config, media_sha256=digest)
        assert acquire_media(cfg, kvm_caps) == cfg.install_media

    def test_checksum_mismatch(self, provision_config, kvm_caps):
        cfg = replace(provision_config, media_sha256="0" * 64)
        with pytest.raises(MediaAcquisitionFailure, match="Checksum mismatch"):
            acquire_media(cfg, kvm_caps)

    def test_missing_without_url(self, provision_config, kvm_caps, tmp_path):
        cfg = replace(provision_config, install_media=tmp_path / "absent.iso")
        with pytest.raises(MediaAcquisitionFailure, match="archlinux.org/download"):
            acquire_media(cfg, kvm_caps)

    def test_missing_without_download_tool(self, provision_config, kvm_caps, tmp_path):
        cfg = replace(
            provision_config,
            install_media=tmp_path / "absent.iso",
            media_url="https://mirror.example/arch.iso",
        )
        caps = replace(kvm_caps, download_tool=DownloadTool.UNAVAILABLE)
        with pytest.raises(MediaAcquisitionFailure, match="no download tool"):
            acquire_media(cfg, caps, confirm=lambda prompt: True)

    def test_download_declined(self, provision_config, kvm_caps, tmp_path):
        cfg = replace(
            provision_config,
            install_media=tmp_path / "absent.iso",
            media_url="https://mirror.example/arch.iso",
        )
        with patch("provisioner.media.download_file") as mock_download:
            with pytest.raises(MediaAcquisitionFailure, match="declined"):
                acquire_media(cfg, kvm_caps, confirm=lambda prompt: False)
        mock_download.assert_not_called()

    def test_download_accepted(self, provision_config, kvm_caps, tmp_path):
        target = tmp_path / "isos" / "arch.iso"
        cfg = replace(provision_config, install_media=target, media_url="https://mirror.example/arch.iso")

        def fake_download(tool, url, destination, label):
            destination.write_bytes(b"iso")

        with patch("provisioner.media.download_file", side_effect=fake_download) as mock_download:
            assert acquire_media(cfg, kvm_caps, confirm=lambda prompt: True) == target
        mock_download.assert_called_once()
        assert mock_download.call_args[0][:3] == (DownloadTool.WGET, cfg.media_url, target)

    def test_eof_on_prompt_declines(self, provision_config, kvm_caps, tmp_path):
        cfg = replace(
            provision_config,
            install_media=tmp_path / "absent.iso",
            media_url="https://mirror.example/arch.iso",
        )
        with patch("builtins.input", side_effect=EOFError):
            with pytest.raises(MediaAcquisitionFailure, match="declined"):
                acquire_media(cfg, kvm_caps)

    def test_interrupted_download_is_not_reused(self, provision_config, kvm_caps, tmp_path):
        target = tmp_path / "isos" / "arch.iso"
        cfg = replace(provision_config, install_media=target, media_url="https://mirror.example/arch.iso")

        def partial_then_signal(cmd, **kwargs):
            Path(cmd[cmd.index("-O") + 1]).write_bytes(b"truncated")
            raise Interrupted("SIGTERM received, cleaning up")

        with patch("provisioner.utils.subprocess.run", side_effect=partial_then_signal):
            with pytest.raises(Interrupted):
                acquire_media(cfg, kvm_caps, confirm=lambda prompt: True)
        assert not target.exists()
        assert list(target.parent.iterdir()) == []

        with patch("provisioner.media.download_file") as mock_download:
            with pytest.raises(MediaAcquisitionFailure, match="declined"):
                acquire_media(cfg, kvm_caps, confirm=lambda prompt: False)
        mock_download.assert_not_called()


class TestInstallDirectory:
    def test_existing_directory_conflicts(self, tmp_path):
        (tmp_path / "arch-install").mkdir()
        with pytest.raises(DirectoryConflict, match="exists, quitting"):
            ensure_fresh_directory(tmp_path / "arch-install")

    def test_fresh_directory_ok(self, tmp_path):
        ensure_fresh_directory(tmp_path / "arch-install")

    def test_create(self, tmp_path):
        create_install_directory(tmp_path / "arch-install")
        assert (tmp_path / "arch-install").is_dir()

    def test_create_refuses_existing(self, tmp_path):
        (tmp_path / "arch-install").mkdir()
        with pytest.raises(DirectoryConflict):
            create_install_directory(tmp_path / "arch-install")


class TestSynthesize:
    def test_stages_three_files(self, recipe_params, tmp_path):
        staging = stage_recipe(recipe_params, tmp_path)
        assert sorted(p.name for p in staging.iterdir()) == ["ia.sh", "install-vars", "vars"]
        assert os.access(staging / "ia.sh", os.X_OK)
        assert (staging / "vars").read_text() == "SWAP=2\n"

    def test_ssh_key_quoted_for_the_guest_shell(self, recipe_params, tmp_path):
        staging = stage_recipe(recipe_params, tmp_path)
        text = (staging / "install-vars").read_text()
        assert f"USER_SSH_KEY='{recipe_params.ssh_public_key}'\n" in text
        assert "HOSTNAME=arch-qemu\n" in text
        assert "USERNAME=archuser\n" in text
        assert f"USER_PASSWORD_HASH='{recipe_params.password_hash}'\n" in text

    def test_linux_writer(self, kvm_caps, tmp_path):
        assert _iso_command(kvm_caps, tmp_path) == [
            "mkisofs", "-quiet", "-r", "-V", "IA",
            "-o", str(tmp_path / "ia.iso"), str(tmp_path / "x"),
        ]

    def test_darwin_writer(self, darwin_caps, tmp_path):
        cmd = _iso_command(darwin_caps, tmp_path)
        assert cmd[:2] == ["hdiutil", "makehybrid"]
        assert cmd[-2:] == [str(tmp_path / "ia.iso"), str(tmp_path / "x")]

    def test_success(self, recipe_params, kvm_caps, tmp_path):
        with patch("provisioner.media.run", return_value=_completed()) as mock_run:
            media = synthesize(recipe_params, tmp_path, kvm_caps)
        assert media.path == tmp_path / "ia.iso"
        assert media.staging_dir == tmp_path / "x"
        assert mock_run.call_args[0][0][0] == "mkisofs"

    def test_writer_failure(self, recipe_params, kvm_caps, tmp_path):
        with patch("provisioner.media.run", return_value=_completed(2, "mkisofs: Permission denied\n")):
            with pytest.raises(MediaBuildFailure, match="Permission denied"):
                synthesize(recipe_params, tmp_path, kvm_caps)
        assert (tmp_path / "x" / "ia.sh").exists()

    def test_writer_missing(self, recipe_params, kvm_caps, tmp_path):
        with patch("provisioner.media.run", side_effect=FileNotFoundError("mkisofs")):
            with pytest.raises(MediaBuildFailure):
                synthesize(recipe_params, tmp_path, kvm_caps)


class TestDiskImage:
    def test_creates_raw_image(self, tmp_path):
        with patch("provisioner.media.run", return_value=_completed()) as mock_run:
            disk = create_disk_image(tmp_path, 20)
        assert disk == tmp_path / "arch.img"
        assert mock_run.call_args[0][0] == ["qemu-img", "create", "-f", "raw", str(disk), "20G"]

    def test_failure(self, tmp_path):
        with patch("provisioner.media.run", return_value=_completed(1)):
            with pytest.raises(MediaBuildFailure, match="qemu-img"):
                create_disk_image(tmp_path, 20)


class TestRunScript:
    def test_written_executable(self, kvm_caps, tmp_path):
        script = write_run_script(tmp_path, kvm_caps, headless=False, memory_mb=1024)
        assert script == tmp_path / "run.sh"
        assert os.access(script, os.X_OK)
        text = script.read_text()
        assert text.startswith("#!/bin/bash")
        assert "ACCEL=kvm" in text
        assert "VNC=''" in text

    def test_headless(self, tcg_caps, tmp_path):
        text = write_run_script(tmp_path, tcg_caps, headless=True, memory_mb=1024).read_text()
        assert "ACCEL=tcg" in text
        assert "VNC='-vnc :1'" in text
