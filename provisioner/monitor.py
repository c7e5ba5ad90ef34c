"""Short-lived sessions on the QEMU text monitor, driven through nc."""

from __future__ import annotations

import subprocess
import threading
import time
from typing import List, Sequence

from provisioner.constants import OTHER_DIALECT_SESSION_TIMEOUT
from provisioner.exceptions import MonitorBusy, MonitorUnreachable
from provisioner.keys import compile_keys, to_monitor_commands
from provisioner.models import MonitorEndpoint, NetcatDialect
from provisioner.utils import log

# Flags that make each nc dialect close the connection once stdin hits EOF.
DIALECT_FLAGS = {
    NetcatDialect.BSD: ["-N"],
    NetcatDialect.GNU: ["-c"],
    NetcatDialect.OTHER: [],
}


class MonitorClient:
    """Send line-oriented commands to the monitor, one connection per call.

    The monitor accepts a single peer at a time, so sessions are serialised
    by a lock and a second concurrent ``send`` raises MonitorBusy.
    """

    def __init__(
        self,
        endpoint: MonitorEndpoint,
        dialect: NetcatDialect,
        session_timeout: float = OTHER_DIALECT_SESSION_TIMEOUT,
    ) -> None:
        self.endpoint = endpoint
        self.dialect = dialect
        self.session_timeout = session_timeout
        self._session_lock = threading.Lock()

    def command(self) -> List[str]:
        return ["nc", *DIALECT_FLAGS[self.dialect], self.endpoint.host, str(self.endpoint.port)]

    def send(self, lines: Sequence[str], pace: float = 0.0) -> None:
        if not self._session_lock.acquire(blocking=False):
            raise MonitorBusy(f"A monitor session to {self.endpoint.host}:{self.endpoint.port} is already open")
        try:
            self._send(lines, pace)
        finally:
            self._session_lock.release()

    def _send(self, lines: Sequence[str], pace: float) -> None:
        payload = "".join(f"{line}\n" for line in lines)
        cmd = self.command()
        log("DEBUG", f"Monitor session: {' '.join(cmd)} ({len(lines)} line(s))")
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                text=True,
            )
        except OSError as exc:
            raise MonitorUnreachable(f"Could not start nc: {exc}") from exc

        try:
            assert proc.stdin is not None
            proc.stdin.write(payload)
            proc.stdin.flush()
            if pace:
                time.sleep(pace)
            proc.stdin.close()
        except BrokenPipeError:
            # nc already exited, usually because the connection was refused
            pass

        # Without a close-on-EOF flag nc may linger after delivering everything.
        timeout = self.session_timeout if self.dialect is NetcatDialect.OTHER else None
        try:
            returncode = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()
            log("DEBUG", f"nc still connected after {timeout}s; closed the session")
            return
        if returncode != 0:
            raise MonitorUnreachable(
                f"Monitor at {self.endpoint.host}:{self.endpoint.port} unreachable (nc exit {returncode})"
            )


def inject(client: MonitorClient, literal: str, pace: float = 0.0) -> int:
    """Type literal into the guest; returns the number of keys sent."""
    keys = compile_keys(literal)
    client.send(to_monitor_commands(keys), pace=pace)
    log("DEBUG", f"Injected {len(keys)} key(s)")
    return len(keys)
