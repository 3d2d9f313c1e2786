"""Free TCP port discovery for local servers."""

import logging
import socket
from types import TracebackType
from typing import Final, Optional, Type

from kit_e2e.errors import PortAllocationError

logger = logging.getLogger(__name__)

DEFAULT_HOST: Final[str] = "localhost"
DEFAULT_START_PORT: Final[int] = 4000
MAX_PORT: Final[int] = 65535


class PortReservation:
    """
    A port held by a bound (not yet listening) socket.

    While the reservation is held no other allocator, in this process or any
    other, can bind the same port. Hand ``socket`` to the server that will
    listen on it, or call ``release()`` to give the port back.
    """

    def __init__(self, port: int, host: str, sock: socket.socket) -> None:
        self.port = port
        self.host = host
        self.socket = sock

    @property
    def released(self) -> bool:
        return self.socket.fileno() == -1

    def release(self) -> None:
        """Close the underlying socket. Safe to call more than once."""
        self.socket.close()

    def __enter__(self) -> "PortReservation":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.release()


def _try_bind(host: str, port: int) -> Optional[socket.socket]:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    # No SO_REUSEADDR: on Linux two non-listening sockets with it set can
    # share a port, which would defeat the reservation.
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        return None
    return sock


def reserve_port(
    start: int = DEFAULT_START_PORT,
    host: str = DEFAULT_HOST,
    end: int = MAX_PORT,
) -> PortReservation:
    """
    Reserve the first bindable port in ``start..end``.

    Raises PortAllocationError if every port in the range is taken.
    """
    if not 0 < start <= end <= MAX_PORT:
        raise PortAllocationError(f"Invalid port range {start}-{end}")

    for port in range(start, end + 1):
        sock = _try_bind(host, port)
        if sock is not None:
            logger.debug(f"Reserved port {port} on {host}")
            return PortReservation(port, host, sock)

    raise PortAllocationError(f"No free port on {host} between {start} and {end}")


def find_port(
    start: int = DEFAULT_START_PORT,
    host: str = DEFAULT_HOST,
    end: int = MAX_PORT,
) -> int:
    """
    Return a port that was free at the time of the call.

    The port is released before returning so another process can bind it.
    Use ``reserve_port`` when the caller binds the port itself.
    """
    with reserve_port(start, host, end) as reservation:
        return reservation.port


def is_port_listening(port: int, host: str = DEFAULT_HOST, timeout: float = 1.0) -> bool:
    """Check whether something accepts TCP connections on the port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(timeout)
        return s.connect_ex((host, port)) == 0
