"""CLI entry point for arch-vm-provisioner."""

from __future__ import annotations

import argparse
import time
from typing import List, Optional

from provisioner.config import parse_env
from provisioner.constants import (
    BOOTSTRAP_COMMAND,
    QGA_SOCKET_NAME,
    RUN_SCRIPT_NAME,
    STAGING_DIR_NAME,
    VNC_DISPLAY,
)
from provisioner.exceptions import MediaBuildFailure, ProvisionError
from provisioner.firmware import prepare_firmware
from provisioner.guard import ResourceGuard
from provisioner.media import (
    acquire_media,
    create_disk_image,
    create_install_directory,
    ensure_fresh_directory,
    synthesize,
    write_run_script,
)
from provisioner.models import ProvisionConfig
from provisioner.monitor import MonitorClient, inject
from provisioner.poller import await_shutdown
from provisioner.probe import probe
from provisioner.utils import has_controlling_tty, log
from provisioner.vm import launch, teardown


def wait_for_prompt(delay: float) -> bool:
    """Give the live ISO time to boot, then let the operator confirm the prompt.

    There is no signal from the guest console, so readiness is a fixed delay
    plus an Enter keypress.  Without a TTY the delay alone has to do.
    """
    log("WARN", 'Wait for the "root@archiso ~ #" prompt.')
    time.sleep(delay)
    if not has_controlling_tty():
        log("WARN", "No TTY detected; sending the install command without confirmation")
        return True
    log("WARN", "Press enter in THIS terminal window when you see that prompt.")
    try:
        answer = input()
    except EOFError:
        return False
    return answer == ""


def print_summary(cfg: ProvisionConfig) -> None:
    lines: List[str] = [
        f"  To run your new machine: cd {cfg.install_dir} && ./{RUN_SCRIPT_NAME}",
        f"  Host: {cfg.recipe.hostname}  User: {cfg.recipe.username}  Pass: {cfg.password}",
    ]
    if cfg.headless:
        lines.append(f"  VNC:  localhost{VNC_DISPLAY}")
    max_len = max(len(line) for line in lines)
    border_len = max_len + 2
    banner_colour = "\033[0;36m"
    reset = "\033[0m"
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)
    for line in lines:
        print(f"{banner_colour}{line}{reset}", flush=True)
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)


def provision(cfg: ProvisionConfig, guard: ResourceGuard) -> None:
    caps = probe()

    work_dir = cfg.install_dir
    ensure_fresh_directory(work_dir)
    install_media = acquire_media(cfg, caps)
    create_install_directory(work_dir)

    guard.track(work_dir / STAGING_DIR_NAME)
    try:
        recipe_media = synthesize(cfg.recipe, work_dir, caps)
    except MediaBuildFailure:
        guard.keep_artifacts()
        raise
    guard.track(recipe_media.path)

    disk_image = create_disk_image(work_dir, cfg.recipe.disk_size_gb)
    prepare_firmware(work_dir, cfg.ovmf_dir, caps)
    write_run_script(work_dir, caps, cfg.headless, cfg.memory_mb)

    guard.track(work_dir / QGA_SOCKET_NAME)
    guard.expect_vm()
    handle = launch(
        caps,
        disk_image=disk_image,
        install_media=install_media,
        recipe_media=recipe_media.path,
        endpoint=cfg.monitor,
        work_dir=work_dir,
        memory_mb=cfg.memory_mb,
        headless=cfg.headless,
    )
    guard.adopt(handle)

    client = MonitorClient(cfg.monitor, caps.netcat_dialect)
    if wait_for_prompt(cfg.prompt_delay):
        inject(client, BOOTSTRAP_COMMAND, pace=cfg.key_pace)
    else:
        log("WARN", "Input was not empty; type the install command in the VM console yourself")

    log("INFO", "Waiting for install to complete.")
    elapsed = await_shutdown(client, interval=cfg.poll_interval, timeout=cfg.install_timeout)
    teardown(handle)
    log("SUCCESS", f"Install complete ({int(elapsed)}s)")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Install Arch Linux into a fresh QEMU virtual machine")
    parser.add_argument(
        "--vnc",
        "-vnc",
        dest="headless",
        action="store_true",
        help="Run headless with a VNC server on localhost:1 and install a headless run script",
    )
    args = parser.parse_args(argv)

    if args.headless:
        log("WARN", f"Running headless. VNC server on localhost{VNC_DISPLAY}")

    try:
        cfg = parse_env(headless=args.headless)
    except ProvisionError as exc:
        log("ERROR", str(exc))
        return 1

    try:
        with ResourceGuard() as guard:
            provision(cfg, guard)
    except ProvisionError as exc:
        log("ERROR", str(exc))
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1

    print_summary(cfg)
    return 0
