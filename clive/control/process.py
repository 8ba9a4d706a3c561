"""
Supervision of the relay and client processes started by the control service.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import IO, Optional, Sequence

from ..errors import ProcessError

LOG = logging.getLogger(__name__)

DEFAULT_TAIL_LINES = 100
STOP_TIMEOUT_S = 5.0


class ManagedProcess:
    """
    At most one running child process whose output is appended to a log file.

    A process that exits on its own is reaped the next time its state is
    queried, after which it can be started again.
    """

    def __init__(self, name: str, log_path: Path) -> None:
        self.name = name
        self.log_path = Path(log_path)
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._log_handle: Optional[IO[bytes]] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._alive_locked()

    @property
    def pid(self) -> Optional[int]:
        with self._lock:
            return self._process.pid if self._alive_locked() else None

    def start(self, argv: Sequence[str]) -> int:
        with self._lock:
            if self._alive_locked():
                raise ProcessError(f"{self.name} is already running")
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            log_handle = self.log_path.open("ab")
            try:
                process = subprocess.Popen(list(argv), stdout=log_handle, stderr=subprocess.STDOUT)
            except OSError as exc:
                log_handle.close()
                raise ProcessError(f"failed to start {self.name}: {exc}") from exc
            self._process = process
            self._log_handle = log_handle
            LOG.info("Started %s (pid %d): %s", self.name, process.pid, " ".join(argv))
            return process.pid

    def stop(self, timeout: float = STOP_TIMEOUT_S) -> int:
        """
        Terminate the process, killing it if it ignores SIGTERM, and return
        its exit code.
        """

        with self._lock:
            if not self._alive_locked():
                raise ProcessError(f"{self.name} is not running")
            process = self._process
            process.terminate()
            try:
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                LOG.warning("%s did not exit within %.1fs; killing it", self.name, timeout)
                process.kill()
                process.wait()
            returncode = process.returncode
            self._reap_locked()
            LOG.info("Stopped %s (exit code %s)", self.name, returncode)
            return returncode

    def tail(self, lines: int = DEFAULT_TAIL_LINES) -> str:
        try:
            with self.log_path.open("r", encoding="utf-8", errors="replace") as handle:
                return "".join(deque(handle, maxlen=lines))
        except FileNotFoundError as exc:
            raise ProcessError(f"no logs available yet for {self.name}") from exc

    def _alive_locked(self) -> bool:
        process = self._process
        if process is None:
            return False
        if process.poll() is None:
            return True
        LOG.info("%s exited with code %s", self.name, process.returncode)
        self._reap_locked()
        return False

    def _reap_locked(self) -> None:
        if self._log_handle is not None:
            self._log_handle.close()
        self._log_handle = None
        self._process = None


__all__ = ["ManagedProcess"]
