"""
FastAPI control surface that starts and stops the relay and the client.

Each managed program runs as a child process of the control service and
appends its output to its own log file, whose tail is served back over HTTP.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from .. import __version__
from ..errors import ProcessError
from . import schemas
from .process import ManagedProcess

LOG = logging.getLogger(__name__)

SIGNALING_LOG = "signaling.log"
CLIENT_LOG = "client.log"


class ProcessSupervisor:
    """Owns the relay and client processes and knows how to launch them."""

    def __init__(self, log_dir: Path = Path("."), *, relay_port: int = 8080) -> None:
        self.log_dir = Path(log_dir)
        self.relay_port = relay_port
        self.signaling = ManagedProcess("signaling relay", self.log_dir / SIGNALING_LOG)
        self.client = ManagedProcess("client", self.log_dir / CLIENT_LOG)

    def relay_argv(self) -> List[str]:
        return [sys.executable, "-m", "clive.relay.main", "--port", str(self.relay_port)]

    def client_argv(self, launch: schemas.ClientLaunch) -> List[str]:
        argv = [sys.executable, "-m", "clive.main", "--room", launch.room, "--server", launch.server]
        if launch.caller:
            argv.append("--caller")
        return argv

    def commit(self) -> str:
        try:
            result = subprocess.run(
                ["git", "rev-parse", "HEAD"],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError):
            return ""
        return result.stdout.strip() if result.returncode == 0 else ""

    def status(self) -> schemas.ControlStatus:
        return schemas.ControlStatus(
            commit=self.commit(),
            signaling_running=self.signaling.is_running,
            client_running=self.client.is_running,
        )

    def stop_all(self) -> None:
        for process in (self.client, self.signaling):
            if not process.is_running:
                continue
            try:
                process.stop()
            except ProcessError:
                LOG.exception("Failed to stop %s during shutdown", process.name)


def create_app(supervisor: Optional[ProcessSupervisor] = None) -> FastAPI:
    processes = supervisor or ProcessSupervisor()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            processes.stop_all()

    app = FastAPI(title="clive control service", version=__version__, lifespan=lifespan)
    app.state.supervisor = processes

    def _start(process: ManagedProcess, argv: List[str]) -> schemas.ProcessResult:
        try:
            pid = process.start(argv)
        except ProcessError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return schemas.ProcessResult(status="started", pid=pid)

    def _stop(process: ManagedProcess) -> schemas.ProcessResult:
        try:
            returncode = process.stop()
        except ProcessError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return schemas.ProcessResult(status="stopped", returncode=returncode)

    def _logs(process: ManagedProcess) -> PlainTextResponse:
        try:
            return PlainTextResponse(process.tail())
        except ProcessError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.get("/status", response_model=schemas.ControlStatus)
    def status() -> schemas.ControlStatus:
        return processes.status()

    @app.post("/signaling/start", response_model=schemas.ProcessResult)
    def start_signaling() -> schemas.ProcessResult:
        return _start(processes.signaling, processes.relay_argv())

    @app.post("/signaling/stop", response_model=schemas.ProcessResult)
    def stop_signaling() -> schemas.ProcessResult:
        return _stop(processes.signaling)

    @app.get("/signaling/logs", response_class=PlainTextResponse)
    def signaling_logs() -> PlainTextResponse:
        return _logs(processes.signaling)

    @app.post("/client/start", response_model=schemas.ProcessResult)
    def start_client(launch: Optional[schemas.ClientLaunch] = Body(default=None)) -> schemas.ProcessResult:
        return _start(processes.client, processes.client_argv(launch or schemas.ClientLaunch()))

    @app.post("/client/stop", response_model=schemas.ProcessResult)
    def stop_client() -> schemas.ProcessResult:
        return _stop(processes.client)

    @app.get("/client/logs", response_class=PlainTextResponse)
    def client_logs() -> PlainTextResponse:
        return _logs(processes.client)

    return app


__all__ = ["ProcessSupervisor", "create_app"]
