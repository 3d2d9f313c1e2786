"""Tests for the application web server process."""

import shlex
import sys

import psutil
import pytest

from kit_e2e.errors import ServerLifecycleError
from kit_e2e.ports import find_port, is_port_listening, reserve_port
from kit_e2e.web_server import WebServerProcess

HOST = "127.0.0.1"


def http_server_command(port: int) -> str:
    return f"{shlex.quote(sys.executable)} -m http.server {port} --bind {HOST}"


class TestWebServerProcess:
    """Launching, reusing and stopping the server command."""

    def test_start_waits_until_listening(self) -> None:
        port = find_port(23000, host=HOST)

        with WebServerProcess(http_server_command(port), port, host=HOST, timeout=20) as server:
            assert is_port_listening(port, HOST)
            assert server.url == f"http://{HOST}:{port}"
            pid = server.process.pid if server.process else None

        assert not is_port_listening(port, HOST)
        assert pid is not None
        assert not psutil.pid_exists(pid)

    def test_early_exit_reports_output(self) -> None:
        port = find_port(23100, host=HOST)
        server = WebServerProcess("echo booting; exit 3", port, host=HOST, timeout=10)

        with pytest.raises(ServerLifecycleError) as exc_info:
            server.start()

        message = str(exc_info.value)
        assert "exited with code 3" in message
        assert "booting" in message
        assert server.process is None

    def test_timeout_stops_the_process(self) -> None:
        port = find_port(23200, host=HOST)
        server = WebServerProcess("sleep 5", port, host=HOST, timeout=0.5)

        with pytest.raises(ServerLifecycleError, match="did not listen"):
            server.start()
        assert server.process is None

    def test_port_in_use_is_refused(self) -> None:
        with reserve_port(23300, host=HOST) as reservation:
            reservation.socket.listen()
            server = WebServerProcess("sleep 5", reservation.port, host=HOST)

            with pytest.raises(ServerLifecycleError, match="already in use"):
                server.start()
            assert server.process is None

    def test_existing_server_is_reused(self) -> None:
        with reserve_port(23400, host=HOST) as reservation:
            reservation.socket.listen()
            server = WebServerProcess(
                "sleep 5", reservation.port, host=HOST, reuse_existing=True
            )

            server.start()
            assert server.reused
            assert server.process is None
            server.stop()

            assert is_port_listening(reservation.port, HOST)

    def test_stop_without_start_is_a_noop(self) -> None:
        WebServerProcess("true", 1, host=HOST).stop()
