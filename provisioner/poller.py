"""Wait for the guest to power itself off."""

from __future__ import annotations

import time
from typing import Optional

from provisioner.constants import LIVENESS_COMMAND, POLL_INTERVAL
from provisioner.exceptions import GuestTimeout, MonitorUnreachable
from provisioner.monitor import MonitorClient
from provisioner.utils import log

_PROGRESS_EVERY = 60.0


def await_shutdown(
    client: MonitorClient,
    interval: float = POLL_INTERVAL,
    timeout: Optional[float] = None,
) -> float:
    """Block until the monitor stops answering; returns seconds waited.

    The monitor socket disappears together with the hypervisor process, so a
    refused session means the guest has shut down.  With ``timeout`` unset the
    wait is unbounded.
    """
    start = time.monotonic()
    next_report = _PROGRESS_EVERY
    while True:
        try:
            client.send([LIVENESS_COMMAND])
        except MonitorUnreachable:
            elapsed = time.monotonic() - start
            log("DEBUG", f"Monitor closed after {elapsed:.0f}s")
            return elapsed
        elapsed = time.monotonic() - start
        if timeout is not None and elapsed >= timeout:
            raise GuestTimeout(f"Guest still running after {int(timeout)}s (INSTALL_TIMEOUT)")
        if elapsed >= next_report:
            log("DEBUG", f"Install still running ({int(elapsed)}s)")
            next_report += _PROGRESS_EVERY
        time.sleep(interval)
