"""TCP telescope client.

Connects to a telescope server over TCP and exchanges binary protocol
messages. The socket is non-blocking from the start: ``connect_ex``
begins the handshake, and each communication step polls it with a
zero-timeout ``select``. Host names are resolved on a worker thread
and the result is cached for retries; literal IP addresses skip the
lookup. A refused connection is retried every
RECONNECT_INTERVAL seconds while the client is still CONNECTING, which
covers servers that take a moment to start listening. The scheduler's
connect timeout bounds the retries.
"""

from __future__ import annotations

import errno
import ipaddress
import select
import socket
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from telescope_control.clients.protocol import MessageBuffer, ProtocolError, encode_goto
from telescope_control.clients.types import BaseTelescopeClient, ClientState
from telescope_control.descriptor import Equinox
from telescope_control.observability import get_logger
from telescope_control.utils.coordinates import RaDec

if TYPE_CHECKING:
    from telescope_control.observability import DiagnosticLog

logger = get_logger(__name__)

RECONNECT_INTERVAL = 1.0  # seconds between refused connection attempts
RECV_SIZE = 4096
MAX_RECV_PER_STEP = 16

_CONNECT_PENDING = {
    0,
    errno.EINPROGRESS,
    errno.EWOULDBLOCK,
    errno.EALREADY,
    getattr(errno, "WSAEWOULDBLOCK", errno.EWOULDBLOCK),
}
_CONNECT_RETRY = {
    errno.ECONNREFUSED,
    errno.ECONNRESET,
    errno.ECONNABORTED,
    getattr(errno, "WSAECONNREFUSED", errno.ECONNREFUSED),
}

# (family, type, proto, sockaddr) as taken from getaddrinfo
ResolvedAddress = tuple[int, int, int, tuple[Any, ...]]

_resolver = ThreadPoolExecutor(max_workers=4, thread_name_prefix="telescope-resolver")


def resolve_address(host: str, port: int) -> ResolvedAddress:
    """Look up the first stream address of ``host``; may block on DNS."""
    family, kind, proto, _, address = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)[0]
    return family, kind, proto, address


def literal_address(host: str, port: int) -> ResolvedAddress | None:
    """Address for a numeric IPv4/IPv6 host, or None when ``host`` is a name."""
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if ip.version == 6:
        return socket.AF_INET6, socket.SOCK_STREAM, 0, (host, port, 0, 0)
    return socket.AF_INET, socket.SOCK_STREAM, 0, (host, port)


class TcpTelescopeClient(BaseTelescopeClient):
    """Client for a telescope server reachable over TCP."""

    def __init__(
        self,
        name: str,
        host: str,
        port: int,
        equinox: Equinox = Equinox.J2000,
        log: DiagnosticLog | None = None,
        reconnect_interval: float = RECONNECT_INTERVAL,
    ) -> None:
        super().__init__(name, equinox, log)
        self.host = host
        self.port = port
        self.reconnect_interval = reconnect_interval
        self._resolved = literal_address(host, port)
        self._resolving: Future[ResolvedAddress] | None = None
        self._socket: socket.socket | None = None
        self._handshake_pending = False
        self._last_attempt: float | None = None
        self._buffer = MessageBuffer()
        self._outgoing = bytearray()

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def connect(self, now: float) -> None:
        if self._start_connecting(now):
            logger.info("Connecting to telescope server", name=self.name, address=self.address)
            if self._resolved is None:
                self._resolving = _resolver.submit(resolve_address, self.host, self.port)
            else:
                self._open_socket(self._resolved, now)

    def communication_step(self, now: float) -> None:
        if self.state not in (ClientState.CONNECTING, ClientState.CONNECTED):
            return

        if self._resolved is None:
            resolved = self._collect_resolution()
            if resolved is not None:
                self._open_socket(resolved, now)
            return

        if self._socket is None:
            if self._last_attempt is None or now - self._last_attempt >= self.reconnect_interval:
                self._open_socket(self._resolved, now)
            return

        if self._handshake_pending and not self._finish_handshake(self._socket):
            return

        try:
            self._exchange(self._socket, now)
        except ProtocolError as e:
            self.fail(f"malformed data from {self.address}: {e}")
        except OSError as e:
            self.fail(f"connection to {self.address} failed: {e}")

    def send_goto(self, target: RaDec, equinox: Equinox) -> bool:
        if not self.is_connected:
            return self._reject_goto(target)
        self._outgoing.extend(encode_goto(target, time.time_ns() // 1000))
        self._diagnostic("Goto queued", ra=target.ra, dec=target.dec, equinox=equinox.value)
        return True

    def close(self) -> None:
        if not self.state.is_terminal:
            self._set_disconnected("closed")
        self._release()

    # -------------------------------------------------------------------------
    # Socket handling
    # -------------------------------------------------------------------------

    def _collect_resolution(self) -> ResolvedAddress | None:
        """Take the worker's lookup result once it is ready."""
        future = self._resolving
        if future is None or not future.done():
            return None

        self._resolving = None
        try:
            resolved = future.result()
        except OSError as e:
            self.fail(f"cannot resolve {self.address}: {e}")
            return None
        logger.debug("Resolved telescope server", address=self.address, sockaddr=resolved[3])
        self._resolved = resolved
        return resolved

    def _open_socket(self, resolved: ResolvedAddress, now: float) -> None:
        """Start a non-blocking connection attempt."""
        self._last_attempt = now
        family, kind, proto, address = resolved
        try:
            sock = socket.socket(family, kind, proto)
        except OSError as e:
            self.fail(f"cannot open socket for {self.address}: {e}")
            return

        sock.setblocking(False)
        result = sock.connect_ex(address)
        if result in _CONNECT_PENDING:
            self._socket = sock
            self._handshake_pending = True
            return

        sock.close()
        if result in _CONNECT_RETRY:
            logger.debug("Connection refused, will retry", address=self.address)
        else:
            self.fail(f"cannot connect to {self.address}: {errno.errorcode.get(result, result)}")

    def _finish_handshake(self, sock: socket.socket) -> bool:
        """Poll a pending connect; True once the socket is usable."""
        _, writable, errored = select.select([], [sock], [sock], 0)
        if not writable and not errored:
            return False

        error = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if error == 0:
            self._handshake_pending = False
            logger.info("Connected to telescope server", name=self.name, address=self.address)
            self._diagnostic("TCP connection established", address=self.address)
            return True

        sock.close()
        self._socket = None
        self._handshake_pending = False
        if error in _CONNECT_RETRY:
            logger.debug("Connection refused, will retry", address=self.address)
        else:
            self.fail(f"cannot connect to {self.address}: {errno.errorcode.get(error, error)}")
        return False

    def _exchange(self, sock: socket.socket, now: float) -> None:
        readable, writable, _ = select.select(
            [sock], [sock] if self._outgoing else [], [], 0
        )

        if writable:
            try:
                sent = sock.send(self._outgoing)
            except BlockingIOError:
                sent = 0
            del self._outgoing[:sent]

        if not readable:
            return

        for _ in range(MAX_RECV_PER_STEP):
            try:
                data = sock.recv(RECV_SIZE)
            except BlockingIOError:
                return
            if not data:
                self._set_disconnected(f"server {self.address} closed the connection")
                return
            for message in self._buffer.feed(data):
                self._set_position(message.coords, now, message.status, message.time_us)
            if len(data) < RECV_SIZE:
                return

    def _release(self) -> None:
        if self._resolving is not None:
            self._resolving.cancel()
            self._resolving = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
            self._handshake_pending = False
