"""Hypervisor process lifecycle for arch-vm-provisioner."""

from __future__ import annotations

import os
import signal
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from provisioner.constants import (
    LAUNCH_SETTLE,
    PID_FILE,
    QGA_SOCKET_NAME,
    TEARDOWN_WAIT,
    VNC_DISPLAY,
)
from provisioner.exceptions import ProvisionError
from provisioner.models import CapabilityRecord, MonitorEndpoint, VMProcessHandle
from provisioner.recipe import cpu_flags
from provisioner.utils import log


def build_command(
    caps: CapabilityRecord,
    disk_image: Path,
    install_media: Path,
    recipe_media: Path,
    endpoint: MonitorEndpoint,
    work_dir: Path,
    memory_mb: int,
    headless: bool = False,
) -> List[str]:
    cmd = [
        caps.hypervisor_path,
        "-name", "arch",
        "-nodefaults",
        "-monitor", f"telnet:{endpoint.host}:{endpoint.port},server,nowait",
        "-machine", f"type=q35,accel={caps.accel_name}",
    ]
    cmd.extend(cpu_flags(caps).split())
    cmd.extend([
        "-m", str(memory_mb),
        "-device", "virtio-rng-pci",
        "-device", "virtio-gpu",
        "-device", "qemu-xhci,id=xhci",
        "-device", "usb-tablet",
        "-drive", f"id=disk0,if=virtio,format=raw,file={disk_image},media=disk",
        "-drive", f"file={install_media},media=cdrom",
        "-drive", f"file={recipe_media},media=cdrom",
        "-netdev", "user,id=net0",
        "-device", "virtio-net-pci,id=nic0,netdev=net0",
        "-device", "virtio-serial",
        "-chardev", f"socket,path={work_dir / QGA_SOCKET_NAME},server=on,wait=off,id=qga0",
        "-device", "virtserialport,chardev=qga0,name=org.qemu.guest_agent.0",
    ])
    if headless:
        cmd.extend(["-vnc", VNC_DISPLAY])
    cmd.extend([
        "-drive", f"if=pflash,format=raw,readonly=on,file={work_dir / 'OVMF_CODE.fd'}",
        "-drive", f"if=pflash,format=raw,file={work_dir / 'OVMF_VARS.fd'}",
    ])
    return cmd


def launch(
    caps: CapabilityRecord,
    disk_image: Path,
    install_media: Path,
    recipe_media: Path,
    endpoint: MonitorEndpoint,
    work_dir: Path,
    memory_mb: int,
    headless: bool = False,
    pid_file: Path = PID_FILE,
) -> VMProcessHandle:
    """Start the hypervisor in its own session and record its pid."""
    cmd = build_command(
        caps, disk_image, install_media, recipe_media, endpoint, work_dir, memory_mb, headless
    )
    log("INFO", "Starting machine")
    log("DEBUG", f"Running: {' '.join(cmd)}")
    # A pid left by an earlier, killed run may since belong to another process.
    pid_file.unlink(missing_ok=True)
    try:
        proc = subprocess.Popen(cmd, stdin=subprocess.DEVNULL, start_new_session=True)
    except OSError as exc:
        raise ProvisionError(f"Failed to start {caps.hypervisor_path}: {exc}")

    handle = VMProcessHandle(pid=proc.pid, endpoint=endpoint, pid_file=pid_file, process=proc)
    try:
        pid_file.write_text(f"{proc.pid}\n")
    except OSError as exc:
        log("WARN", f"Could not write pid file {pid_file}: {exc}")

    time.sleep(LAUNCH_SETTLE)
    returncode = proc.poll()
    if returncode is not None:
        teardown(handle)
        raise ProvisionError(f"{Path(caps.hypervisor_path).name} exited immediately (status {returncode})")
    log("SUCCESS", f"Machine running (PID {proc.pid})")
    return handle


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _terminate_pid(pid: int, wait: float) -> None:
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        return
    deadline = time.monotonic() + wait
    while time.monotonic() < deadline:
        if not _pid_alive(pid):
            return
        time.sleep(0.1)
    log("WARN", f"Hypervisor (PID {pid}) ignored SIGTERM, killing it")
    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def teardown(handle: Optional[VMProcessHandle], wait: float = TEARDOWN_WAIT) -> None:
    """Stop the hypervisor if it is still running. Safe to call repeatedly."""
    if handle is None:
        return
    proc = handle.process
    if proc is not None:
        if proc.poll() is None:
            log("INFO", f"Stopping hypervisor (PID {handle.pid})")
            proc.terminate()
            try:
                proc.wait(timeout=wait)
            except subprocess.TimeoutExpired:
                log("WARN", f"Hypervisor (PID {handle.pid}) ignored SIGTERM, killing it")
                proc.kill()
                proc.wait()
    elif _pid_alive(handle.pid):
        log("INFO", f"Stopping hypervisor (PID {handle.pid})")
        _terminate_pid(handle.pid, wait)
    handle.pid_file.unlink(missing_ok=True)


def kill_from_pid_file(pid_file: Path = PID_FILE, wait: float = TEARDOWN_WAIT) -> bool:
    """Kill a hypervisor recorded in pid_file; returns True if one was running."""
    try:
        raw = pid_file.read_text().strip()
    except OSError:
        return False
    try:
        pid = int(raw)
    except ValueError:
        log("WARN", f"Ignoring malformed pid file {pid_file}")
        pid_file.unlink(missing_ok=True)
        return False
    alive = _pid_alive(pid)
    if alive:
        log("WARN", f"Killing leftover hypervisor process (PID {pid})")
        _terminate_pid(pid, wait)
    pid_file.unlink(missing_ok=True)
    return alive
