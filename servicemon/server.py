"""Server lifecycle: bind, serve on a background thread, drain on signal."""
from __future__ import annotations

import asyncio
import signal
import socket
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional, Tuple

import uvicorn
from uvicorn.protocols.http.h11_impl import H11Protocol

from .config import MonitorSettings
from .events import EventLogger

# Extra time allowed for the serve thread to exit after uvicorn's own drain deadline.
JOIN_MARGIN_SECONDS = 5.0


class ServerError(Exception):
    """Raised when the listener cannot be bound or the server stops unexpectedly."""


class LifecycleState(str, Enum):
    INITIALIZING = "initializing"
    SERVING = "serving"
    DRAINING = "draining"
    STOPPED = "stopped"


class ReadDeadlineProtocol(H11Protocol):
    """h11 protocol that closes connections whose request head does not arrive in time.

    The deadline runs from the moment the connection opens, or from the first
    byte of a follow-up request on a kept-alive connection, until the request
    cycle starts. Idle keep-alive periods stay under uvicorn's own timer.
    """

    read_timeout: float = 15.0
    _read_deadline: Optional[asyncio.TimerHandle] = None

    @classmethod
    def with_read_timeout(cls, seconds: float) -> type:
        return type(cls.__name__, (cls,), {"read_timeout": seconds})

    def connection_made(self, transport: asyncio.Transport) -> None:
        super().connection_made(transport)
        self._arm_read_deadline()

    def data_received(self, data: bytes) -> None:
        if not self._request_in_progress():
            self._arm_read_deadline()
        super().data_received(data)
        if self._request_in_progress():
            self._cancel_read_deadline()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._cancel_read_deadline()
        super().connection_lost(exc)

    def _request_in_progress(self) -> bool:
        return self.cycle is not None and not self.cycle.response_complete

    def _arm_read_deadline(self) -> None:
        if self._read_deadline is None:
            self._read_deadline = self.loop.call_later(self.read_timeout, self._read_deadline_expired)

    def _cancel_read_deadline(self) -> None:
        if self._read_deadline is not None:
            self._read_deadline.cancel()
            self._read_deadline = None

    def _read_deadline_expired(self) -> None:
        self._read_deadline = None
        if not self._request_in_progress() and not self.transport.is_closing():
            self.transport.close()


class InFlightTracker:
    """ASGI wrapper counting HTTP requests in progress and those cut off by shutdown.

    With ``write_timeout`` set, every ``send`` must complete within that many
    seconds or the request fails with ``asyncio.TimeoutError``.
    """

    def __init__(self, app: Any, write_timeout: Optional[float] = None) -> None:
        self.app = app
        self.write_timeout = write_timeout
        self.active = 0
        self.interrupted = 0

    def _bounded(self, send: Callable) -> Callable:
        async def send_within_deadline(message: dict) -> None:
            await asyncio.wait_for(send(message), self.write_timeout)

        return send_within_deadline

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        if self.write_timeout is not None:
            send = self._bounded(send)
        # All increments happen on the server's event loop thread.
        self.active += 1
        try:
            await self.app(scope, receive, send)
        except asyncio.CancelledError:
            self.interrupted += 1
            raise
        finally:
            self.active -= 1


class ServerLifecycle:
    """Runs an ASGI app through initializing, serving, draining and stopped."""

    def __init__(
        self,
        app: Any,
        settings: MonitorSettings,
        events: EventLogger,
        *,
        server_factory: Callable[[uvicorn.Config], uvicorn.Server] = uvicorn.Server,
    ) -> None:
        self.app = app
        self.tracker = InFlightTracker(app, write_timeout=settings.write_timeout)
        self.settings = settings
        self.events = events
        self.server_factory = server_factory
        self.state = LifecycleState.INITIALIZING
        self.server: Optional[uvicorn.Server] = None
        self.error: Optional[BaseException] = None
        self.signal_received: Optional[int] = None
        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._shutdown = threading.Event()

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        if self._socket is None:
            return None
        host, port = self._socket.getsockname()[:2]
        return host, port

    def bind(self) -> socket.socket:
        host = self.settings.api_host
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, self.settings.api_port))
        except OSError as exc:
            sock.close()
            self.events.emit(
                "fatal",
                "Server failed to start",
                {"addr": self.settings.listen_address, "error": str(exc)},
            )
            raise ServerError(f"Unable to bind {self.settings.listen_address}: {exc}") from exc
        sock.set_inheritable(True)
        self._socket = sock
        return sock

    def _close_socket(self) -> None:
        if self._socket is not None:
            self._socket.close()

    def _build_server(self) -> uvicorn.Server:
        config = uvicorn.Config(
            self.tracker,
            log_level=self.settings.log_level.lower(),
            log_config=None,
            access_log=False,
            http=ReadDeadlineProtocol.with_read_timeout(self.settings.read_timeout),
            timeout_keep_alive=self.settings.idle_timeout,
            timeout_graceful_shutdown=self.settings.shutdown_grace,
        )
        return self.server_factory(config)

    def _serve(self) -> None:
        assert self.server is not None and self._socket is not None
        try:
            self.server.run(sockets=[self._socket])
        except (Exception, SystemExit) as exc:
            self.error = exc
        finally:
            if not self._shutdown.is_set() and self.error is None:
                self.error = ServerError("Server stopped unexpectedly")
            self._shutdown.set()

    def start(self, ready_timeout: float = 10.0) -> None:
        if self._socket is None:
            self.bind()
        self.server = self._build_server()
        self._thread = threading.Thread(target=self._serve, name="servicemon-api", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + ready_timeout
        while not self.server.started:
            if self.error is not None or not self._thread.is_alive():
                break
            if time.monotonic() > deadline:
                self.error = ServerError("Server did not start in time")
                break
            time.sleep(0.01)

        if self.error is not None:
            self.events.emit("fatal", "Server failed to start", {"error": str(self.error)})
            self._close_socket()
            raise ServerError(str(self.error)) from self.error

        self.state = LifecycleState.SERVING
        host, port = self.address
        self.events.emit(
            "info",
            f"Server listening on {host}:{port}",
            {
                "host": host,
                "port": port,
                "read_timeout": self.settings.read_timeout,
                "write_timeout": self.settings.write_timeout,
                "idle_timeout": self.settings.idle_timeout,
            },
        )

    def request_shutdown(self, signum: Optional[int] = None, _frame: Any = None) -> None:
        # Repeated signals keep the first one and never cut the drain short.
        if signum is not None and self.signal_received is None:
            self.signal_received = signum
        self._shutdown.set()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown.wait(timeout)

    def drain(self) -> bool:
        """Stop accepting and wait for in-flight requests, bounded by the grace period.

        Returns True when every request finished in time.
        """
        self.state = LifecycleState.DRAINING
        self._shutdown.set()
        self.events.emit(
            "info",
            "Shutting down server...",
            {"grace_seconds": self.settings.shutdown_grace, "in_flight": self.tracker.active},
        )

        clean = True
        if self.server is not None and self._thread is not None:
            self.server.should_exit = True
            self._thread.join(self.settings.shutdown_grace + JOIN_MARGIN_SECONDS)
            if self._thread.is_alive():
                self.server.force_exit = True
                self._thread.join(JOIN_MARGIN_SECONDS)
                clean = False
            if self.tracker.interrupted:
                clean = False

        self._close_socket()

        self.state = LifecycleState.STOPPED
        if not clean:
            self.events.emit(
                "fatal",
                "Server forced to shutdown",
                {"grace_seconds": self.settings.shutdown_grace, "interrupted": self.tracker.interrupted},
            )
        return clean

    def run(self) -> int:
        """Serve until SIGINT/SIGTERM, then drain. Returns the process exit code.

        The signal handlers stay installed until the drain has finished.
        """
        previous = {}
        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                previous[signum] = signal.signal(signum, self.request_shutdown)
        try:
            return self._serve_and_drain()
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

    def _serve_and_drain(self) -> int:
        try:
            self.start()
        except ServerError:
            self.state = LifecycleState.STOPPED
            return 1
        self.wait_for_shutdown()

        if self.error is not None:
            self.events.emit("fatal", "Server failed", {"error": str(self.error)})
            self.drain()
            return 1

        if self.signal_received is not None:
            name = signal.Signals(self.signal_received).name
            self.events.emit("info", "Termination signal received", {"signal": name})
        if not self.drain():
            return 1
        self.events.emit("info", "Server exited")
        return 0


__all__ = ["InFlightTracker", "LifecycleState", "ReadDeadlineProtocol", "ServerError", "ServerLifecycle"]
