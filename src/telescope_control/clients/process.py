"""Client for a telescope server process spawned on this machine.

A LOCAL slot runs a telescope server executable (``TelescopeServer<driver>``)
that owns the serial line and serves the binary protocol on a loopback TCP
port. This client starts the process at construction and then behaves as
a TCP client to 127.0.0.1. Closing the client terminates the process.

Process lifecycle:
    1. Popen([executable, tcp_port, serial_port]) at construction
    2. TCP connection attempts, retried until the server listens
    3. Process exit at any point moves the client to ERROR
    4. close(): terminate, wait PROCESS_TERMINATE_TIMEOUT, then kill
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, Protocol

from telescope_control.clients.network import TcpTelescopeClient
from telescope_control.clients.types import (
    BaseTelescopeClient,
    ClientCreationError,
    ClientState,
    Position,
)
from telescope_control.descriptor import Equinox
from telescope_control.observability import get_logger
from telescope_control.utils.coordinates import RaDec

if TYPE_CHECKING:
    from telescope_control.observability import DiagnosticLog

logger = get_logger(__name__)

LOOPBACK_HOST = "127.0.0.1"
PROCESS_TERMINATE_TIMEOUT = 2.0  # seconds


class ServerProcess(Protocol):  # pragma: no cover
    """Subset of ``subprocess.Popen`` used to supervise the server."""

    pid: int

    def poll(self) -> int | None: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...

    def wait(self, timeout: float | None = None) -> int: ...


ProcessLauncher = Callable[..., ServerProcess]


class ServerProcessClient(BaseTelescopeClient):
    """Spawns a telescope server and talks to it over loopback TCP.

    Connection state, position and goto handling are those of the inner
    TcpTelescopeClient; this class adds supervision of the process.
    """

    def __init__(
        self,
        name: str,
        executable: str,
        tcp_port: int,
        serial_port: str,
        equinox: Equinox = Equinox.J2000,
        log: DiagnosticLog | None = None,
        launcher: ProcessLauncher = subprocess.Popen,
        output_path: Path | None = None,
    ) -> None:
        """Start the server process.

        Args:
            name: Display name.
            executable: Path of the server executable.
            tcp_port: Port the server is told to listen on.
            serial_port: Serial device the server drives.
            equinox: Frame the telescope works in.
            log: Optional per-slot diagnostic log.
            launcher: Popen-compatible factory; tests inject fakes here.
            output_path: File receiving the process' stdout and stderr;
                discarded when None.

        Raises:
            ClientCreationError: If the process cannot be started.
        """
        super().__init__(name, equinox, log)
        self.command: Sequence[str] = [executable, str(tcp_port), serial_port]
        self._output: IO[Any] | None = None
        try:
            if output_path is not None:
                output_path.parent.mkdir(parents=True, exist_ok=True)
                self._output = open(output_path, "ab")  # noqa: SIM115
            self._process: ServerProcess | None = launcher(
                list(self.command),
                stdin=subprocess.DEVNULL,
                stdout=self._output if self._output is not None else subprocess.DEVNULL,
                stderr=subprocess.STDOUT if self._output is not None else subprocess.DEVNULL,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            self._close_output()
            raise ClientCreationError(f"Failed to start {executable}: {e}") from e

        logger.info(
            "Telescope server started",
            name=name,
            command=" ".join(self.command),
            pid=self._process.pid,
        )
        self._diagnostic("Server process started", command=" ".join(self.command))
        self._tcp = TcpTelescopeClient(name, LOOPBACK_HOST, tcp_port, equinox, log)

    # Connection state lives in the TCP client

    @property
    def state(self) -> ClientState:
        return self._tcp.state

    @property
    def is_connected(self) -> bool:
        return self._tcp.is_connected

    @property
    def last_communication(self) -> float | None:
        return self._tcp.last_communication

    @property
    def connect_started(self) -> float | None:
        return self._tcp.connect_started

    @property
    def is_running(self) -> bool:
        """True while the server process has not exited."""
        return self._process is not None and self._process.poll() is None

    def current_position(self) -> Position | None:
        return self._tcp.current_position()

    def connect(self, now: float) -> None:
        self._tcp.connect(now)

    def communication_step(self, now: float) -> None:
        if self._tcp.state.is_terminal:
            return
        process = self._process
        if process is not None:
            exit_code = process.poll()
            if exit_code is not None:
                self.fail(f"server process exited with code {exit_code}")
                return
        self._tcp.communication_step(now)
        if self._tcp.state.is_terminal:
            self._release()

    def send_goto(self, target: RaDec, equinox: Equinox) -> bool:
        return self._tcp.send_goto(target, equinox)

    def fail(self, reason: str) -> None:
        self._tcp.fail(reason)
        self._release()

    def close(self) -> None:
        self._tcp.close()
        self._release()

    def _release(self) -> None:
        process = self._process
        if process is None:
            return
        self._process = None
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=PROCESS_TERMINATE_TIMEOUT)
            except subprocess.TimeoutExpired:
                logger.warning("Telescope server did not terminate, killing", pid=process.pid)
                process.kill()
                process.wait()
        logger.info("Telescope server stopped", name=self.name, pid=process.pid)
        self._close_output()

    def _close_output(self) -> None:
        if self._output is not None:
            self._output.close()
            self._output = None
