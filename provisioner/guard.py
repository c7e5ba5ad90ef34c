"""Process-wide cleanup of the VM and temporary artifacts."""

from __future__ import annotations

import atexit
import shutil
import signal
from pathlib import Path
from typing import List, Optional

from provisioner.constants import PID_FILE
from provisioner.exceptions import Interrupted
from provisioner.models import VMProcessHandle
from provisioner.utils import log
from provisioner.vm import kill_from_pid_file, teardown

_HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ResourceGuard:
    """Owns the VM handle and temp paths; releases them on every exit path.

    Entered once in ``main``.  SIGINT/SIGTERM raise Interrupted so the
    regular unwinding runs, and an atexit hook covers interpreter shutdown.
    ``release`` is idempotent.
    """

    def __init__(self, pid_file: Path = PID_FILE) -> None:
        self.pid_file = pid_file
        self.handle: Optional[VMProcessHandle] = None
        self.temp_paths: List[Path] = []
        self._vm_expected = False
        self._released = False
        self._previous_handlers: dict = {}

    def __enter__(self) -> "ResourceGuard":
        for signum in _HANDLED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)
        atexit.register(self.release)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.release()
        finally:
            for signum, previous in self._previous_handlers.items():
                signal.signal(signum, previous)
            self._previous_handlers.clear()
            atexit.unregister(self.release)

    def _on_signal(self, signum, frame) -> None:
        name = signal.Signals(signum).name
        raise Interrupted(f"{name} received, cleaning up")

    def expect_vm(self) -> None:
        """Mark that a hypervisor launch is under way, so the pid file is trusted."""
        self._vm_expected = True

    def adopt(self, handle: VMProcessHandle) -> None:
        self.handle = handle
        self._vm_expected = True

    def track(self, path: Path) -> None:
        self.temp_paths.append(path)

    def keep_artifacts(self) -> None:
        """Leave tracked files in place, e.g. for inspecting a failed build."""
        self.temp_paths.clear()

    def stop_vm(self) -> None:
        if self.handle is not None:
            teardown(self.handle)
        elif self._vm_expected:
            kill_from_pid_file(self.pid_file)

    def remove_temp_paths(self) -> None:
        while self.temp_paths:
            path = self.temp_paths.pop()
            try:
                if path.is_dir():
                    shutil.rmtree(path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as exc:
                log("WARN", f"Failed to remove {path}: {exc}")

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        # A second signal during cleanup must not abort it half way.
        for signum in _HANDLED_SIGNALS:
            if signum in self._previous_handlers:
                signal.signal(signum, signal.SIG_IGN)
        self.stop_vm()
        if self.temp_paths:
            log("INFO", "Removing temp files")
        self.remove_temp_paths()
