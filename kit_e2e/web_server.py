"""Launch the application's web server process for the duration of a run."""

import logging
import subprocess
import tempfile
import time
from pathlib import Path
from types import TracebackType
from typing import IO, Final, Optional, Type

import psutil

from kit_e2e.errors import ServerLifecycleError
from kit_e2e.ports import DEFAULT_HOST, is_port_listening

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT_SECONDS: Final[float] = 60.0
POLL_INTERVAL_SECONDS: Final[float] = 0.25
STOP_TIMEOUT_SECONDS: Final[float] = 5.0


class WebServerProcess:
    """
    A shell command that serves the application on a known port.

    ``start()`` returns once the port accepts connections. When
    ``reuse_existing`` is set and something already listens on the port, no
    process is launched and ``stop()`` leaves the existing server alone.
    """

    def __init__(
        self,
        command: str,
        port: int,
        host: str = DEFAULT_HOST,
        cwd: Optional[Path] = None,
        timeout: float = STARTUP_TIMEOUT_SECONDS,
        reuse_existing: bool = False,
    ) -> None:
        self.command = command
        self.port = port
        self.host = host
        self.cwd = cwd
        self.timeout = timeout
        self.reuse_existing = reuse_existing
        self.process: Optional["subprocess.Popen[bytes]"] = None
        self._output: Optional[IO[bytes]] = None
        self.reused = False

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self) -> "WebServerProcess":
        if is_port_listening(self.port, self.host):
            if self.reuse_existing:
                logger.info(f"♻️  Reusing server already listening on {self.url}")
                self.reused = True
                return self
            raise ServerLifecycleError(
                f"Port {self.port} is already in use; refusing to start '{self.command}'"
            )

        logger.info(f"🚀 Starting web server: {self.command}")
        self._output = tempfile.TemporaryFile()
        self.process = subprocess.Popen(
            self.command,
            shell=True,
            cwd=self.cwd,
            stdout=self._output,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )

        deadline = time.monotonic() + self.timeout
        while time.monotonic() < deadline:
            if is_port_listening(self.port, self.host):
                logger.info(f"✅ Web server ready at {self.url}")
                return self
            returncode = self.process.poll()
            if returncode is not None:
                output = self.output()
                self.stop()
                raise ServerLifecycleError(
                    f"Web server exited with code {returncode} "
                    f"before listening on port {self.port}:\n{output}"
                )
            time.sleep(POLL_INTERVAL_SECONDS)

        self.stop()
        raise ServerLifecycleError(
            f"Web server did not listen on port {self.port} within {self.timeout}s"
        )

    def stop(self) -> None:
        """Terminate the server and every process it spawned."""
        if self.process is None:
            return
        process, self.process = self.process, None

        try:
            parent = psutil.Process(process.pid)
            procs = [*parent.children(recursive=True), parent]
        except psutil.NoSuchProcess:
            procs = []

        for proc in procs:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                continue

        _, alive = psutil.wait_procs(procs, timeout=STOP_TIMEOUT_SECONDS)
        for proc in alive:
            logger.warning(f"Force killing web server process {proc.pid}")
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue

        process.wait(timeout=STOP_TIMEOUT_SECONDS)
        if self._output is not None:
            self._output.close()
            self._output = None
        logger.info(f"🛑 Web server on port {self.port} stopped")

    def output(self) -> str:
        """Combined stdout and stderr; read it once the process has exited."""
        if self._output is None:
            return ""
        self._output.flush()
        self._output.seek(0)
        return self._output.read().decode(errors="replace")

    def __enter__(self) -> "WebServerProcess":
        return self.start()

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.stop()
