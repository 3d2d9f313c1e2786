"""
Ephemeral HTTP servers for tests that need an isolated backend.

Each server runs uvicorn inside the test's event loop on a port reserved by
``kit_e2e.ports``. Start and close are awaitable and surface every failure
to the caller.
"""

import asyncio
import inspect
import logging
from types import TracebackType
from typing import Awaitable, Callable, Final, Optional, Type, Union

import uvicorn
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from kit_e2e.errors import ServerLifecycleError, ServerNotRunningError
from kit_e2e.ports import (
    DEFAULT_HOST,
    DEFAULT_START_PORT,
    PortReservation,
    reserve_port,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Union[Response, Awaitable[Response]]]

STARTUP_POLL_INTERVAL: Final[float] = 0.01


class HandlerApp:
    """ASGI app delegating every HTTP request to a single handler."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return
        request = Request(scope, receive)
        response = self.handler(request)
        if inspect.isawaitable(response):
            response = await response
        await response(scope, receive, send)


class EphemeralServer:
    """A uvicorn server bound to a freshly reserved localhost port."""

    def __init__(
        self,
        handler: Handler,
        start: int = DEFAULT_START_PORT,
        host: str = DEFAULT_HOST,
    ) -> None:
        self.handler = handler
        self.host = host
        self._start_port = start
        self._reservation: Optional[PortReservation] = None
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional["asyncio.Task[None]"] = None
        self._failure: Optional[BaseException] = None
        self._close_requested = False

    @property
    def port(self) -> int:
        if self._reservation is None:
            raise ServerNotRunningError("Server has not been started")
        return self._reservation.port

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def closed(self) -> bool:
        """True once close() has been called, whatever its outcome."""
        return self._close_requested

    async def start(self) -> "EphemeralServer":
        """Bind, start serving, and return once the socket is listening."""
        if self._task is not None:
            raise ServerLifecycleError(f"Server already started on port {self.port}")

        self._reservation = reserve_port(self._start_port, self.host)
        config = uvicorn.Config(
            HandlerApp(self.handler),
            host=self.host,
            port=self._reservation.port,
            lifespan="off",
            log_config=None,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(
            self._server.serve(sockets=[self._reservation.socket])
        )

        while not self._server.started and not self._task.done():
            await asyncio.sleep(STARTUP_POLL_INTERVAL)

        if not self._server.started:
            self._reservation.release()
            self._failure = self._task.exception() or ServerLifecycleError(
                f"Server on port {self._reservation.port} exited during startup"
            )
            logger.error(
                f"Ephemeral server failed to start on port {self._reservation.port}: "
                f"{self._failure}"
            )
            raise self._failure

        logger.info(f"Ephemeral server listening on {self.url}")
        return self

    async def close(self) -> None:
        """
        Shut down gracefully and release the port.

        Raises the serving failure if the server crashed, and
        ServerNotRunningError if it is already closed.
        """
        self._close_requested = True
        if self._failure is not None:
            raise self._failure
        if self._task is None or self._server is None or self._reservation is None:
            raise ServerNotRunningError("Server is not running")

        task, self._task = self._task, None
        if task.done():
            # Serving crashed past startup; uvicorn skipped its own shutdown.
            for listener in self._server.servers:
                listener.close()
            self._reservation.release()
            error = task.exception()
            if error is not None:
                self._failure = error
                raise error
            raise ServerNotRunningError(f"Server on port {self.port} already stopped")

        self._server.should_exit = True
        try:
            await task
        except Exception as e:
            self._failure = e
            logger.error(f"Ephemeral server on port {self.port} failed to close: {e}")
            raise
        finally:
            self._reservation.release()

        logger.info(f"Ephemeral server on port {self.port} closed")

    async def __aenter__(self) -> "EphemeralServer":
        return await self.start()

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()


async def start_server(
    handler: Handler,
    start: int = DEFAULT_START_PORT,
    host: str = DEFAULT_HOST,
) -> EphemeralServer:
    """Start a server for ``handler`` on the first free port from ``start``."""
    server = EphemeralServer(handler, start=start, host=host)
    return await server.start()
