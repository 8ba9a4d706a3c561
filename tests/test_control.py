import sys
from typing import List

import pytest
from fastapi.testclient import TestClient

from clive.control.process import ManagedProcess
from clive.control.schemas import ClientLaunch
from clive.control.server import ProcessSupervisor, create_app
from clive.errors import ProcessError

SLEEPER = [sys.executable, "-c", "import time; print('ready', flush=True); time.sleep(30)"]


class SleepingSupervisor(ProcessSupervisor):
    """Launches a sleeping interpreter instead of the real programs."""

    def __init__(self, log_dir) -> None:
        super().__init__(log_dir)
        self.launches: List[ClientLaunch] = []

    def relay_argv(self) -> List[str]:
        return list(SLEEPER)

    def client_argv(self, launch: ClientLaunch) -> List[str]:
        self.launches.append(launch)
        return list(SLEEPER)

    def commit(self) -> str:
        return "abc123"


def test_client_argv_forwards_launch_settings(tmp_path) -> None:
    supervisor = ProcessSupervisor(tmp_path, relay_port=9000)

    argv = supervisor.client_argv(ClientLaunch(room="lobby", caller=True))

    assert argv[1:] == ["-m", "clive.main", "--room", "lobby", "--server", "localhost:8080", "--caller"]
    assert supervisor.relay_argv()[1:] == ["-m", "clive.relay.main", "--port", "9000"]


def test_managed_process_start_stop_cycle(tmp_path) -> None:
    process = ManagedProcess("sleeper", tmp_path / "sleeper.log")

    pid = process.start(SLEEPER)
    assert process.is_running is True
    assert process.pid == pid
    with pytest.raises(ProcessError):
        process.start(SLEEPER)

    returncode = process.stop(timeout=5.0)

    assert returncode is not None
    assert process.is_running is False
    with pytest.raises(ProcessError):
        process.stop()


def test_managed_process_reaps_exited_child(tmp_path) -> None:
    process = ManagedProcess("quick", tmp_path / "quick.log")
    process.start([sys.executable, "-c", "print('done')"])
    process._process.wait(timeout=10)  # type: ignore[union-attr]

    assert process.is_running is False
    assert process.tail() == "done\n"


def test_tail_without_log_is_an_error(tmp_path) -> None:
    with pytest.raises(ProcessError):
        ManagedProcess("never", tmp_path / "missing.log").tail()


def test_tail_returns_last_lines(tmp_path) -> None:
    path = tmp_path / "long.log"
    path.write_text("".join(f"line {index}\n" for index in range(250)), encoding="utf-8")

    tail = ManagedProcess("long", path).tail(lines=100)

    assert tail.splitlines()[0] == "line 150"
    assert tail.splitlines()[-1] == "line 249"


def test_control_api_status_and_client_lifecycle(tmp_path) -> None:
    supervisor = SleepingSupervisor(tmp_path)

    with TestClient(create_app(supervisor)) as client:
        assert client.get("/status").json() == {
            "commit": "abc123",
            "signaling_running": False,
            "client_running": False,
        }
        assert client.get("/client/logs").status_code == 404

        started = client.post("/client/start", json={"room": "lobby", "caller": True})
        assert started.status_code == 200
        assert started.json()["status"] == "started"
        assert supervisor.launches[-1] == ClientLaunch(room="lobby", caller=True)
        assert client.post("/client/start").status_code == 409
        assert client.get("/status").json()["client_running"] is True

        stopped = client.post("/client/stop")
        assert stopped.status_code == 200
        assert stopped.json()["status"] == "stopped"
        assert client.post("/client/stop").status_code == 409
        assert client.get("/client/logs").status_code == 200


def test_control_api_defaults_and_validation(tmp_path) -> None:
    supervisor = SleepingSupervisor(tmp_path)

    with TestClient(create_app(supervisor)) as client:
        assert client.post("/client/start", json={"room": "  "}).status_code == 422

        assert client.post("/client/start").status_code == 200
        assert supervisor.launches[-1] == ClientLaunch()
        assert client.post("/signaling/start").status_code == 200
        assert client.get("/status").json()["signaling_running"] is True

    # Leaving the app stops everything it started.
    assert supervisor.signaling.is_running is False
    assert supervisor.client.is_running is False
