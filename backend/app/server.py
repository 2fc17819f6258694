"""Process Bootstrap — owns the listener and the process lifecycle.

Invariants:
    - State moves STARTING → RUNNING → CLOSING → STOPPED; CRASHED is terminal
    - SIGINT and SIGTERM both request shutdown with exit code 0
    - Unhandled asynchronous failures (event loop exception handler) request
      shutdown with exit code 1
    - Synchronous uncaught exceptions exit 1 immediately, no graceful close
    - Bind failure exits 1 with no retry
    - Close error → 1; otherwise the requested code
    - Shutdown never takes longer than shutdown_timeout_seconds; then exit 1
    - Shutdown requested with no listener exits immediately with the requested code
    - SIGINT/SIGTERM are handled from the moment run() starts, including while
      the app is being built

Design Decisions:
    - The bootstrap binds the socket itself and hands it to uvicorn, so a bind
      failure is an OSError here rather than a sys.exit deep inside uvicorn
    - uvicorn's own signal capture is disabled; this module is the only signal owner
    - A second shutdown request while CLOSING is logged and ignored
    - The forced-shutdown timer is cancelled as soon as the listener closes
"""

import asyncio
import contextlib
import logging
import os
import signal
import socket
import sys
import threading
from enum import Enum
from typing import Any, Callable, NoReturn

import uvicorn
from fastapi import FastAPI

from app.config import Settings

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    CLOSING = "closing"
    STOPPED = "stopped"
    CRASHED = "crashed"


def hard_exit(code: int) -> NoReturn:
    """Flush logs and leave the process immediately, skipping interpreter cleanup."""
    logging.shutdown()
    os._exit(code)


class ListenerServer(uvicorn.Server):
    """uvicorn.Server that leaves signal handling to ProcessBootstrap."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class ProcessBootstrap:
    """Starts the HTTP listener and drives its shutdown.

    `serve()` returns the process exit code; `terminate` is only called on
    paths that must not wait (forced timeout, crash, no listener).
    """

    def __init__(
        self,
        app_factory: Callable[[], FastAPI],
        settings: Settings,
        *,
        server_factory: Callable[[uvicorn.Config], Any] = ListenerServer,
        terminate: Callable[[int], Any] = hard_exit,
    ):
        self._app_factory = app_factory
        self._settings = settings
        self._server_factory = server_factory
        self._terminate = terminate
        self._state = LifecycleState.STARTING
        self._loop: asyncio.AbstractEventLoop | None = None
        self._socket: socket.socket | None = None
        self._server: Any = None
        self._serve_task: asyncio.Task | None = None
        self._exit_code: asyncio.Future | None = None
        self._requested_code = 0
        self._force_timer: asyncio.TimerHandle | None = None
        self._previous_loop_handler = None
        self._previous_signal_handlers: dict[signal.Signals, Any] = {}

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def address(self) -> tuple[str, int] | None:
        if self._socket is None:
            return None
        host, port = self._socket.getsockname()[:2]
        return host, port

    async def serve(self) -> int:
        """Run until the listener stops; returns the exit code."""
        self._loop = asyncio.get_running_loop()
        self._exit_code = self._loop.create_future()
        app = self._app_factory()

        self._install_loop_handlers()
        try:
            try:
                self._socket = self._bind()
            except OSError as exc:
                logger.error(
                    f"Could not listen on {self._settings.host}:{self._settings.port}: {exc}",
                    extra={"exit_code": 1},
                )
                self._state = LifecycleState.STOPPED
                return 1

            config = uvicorn.Config(app, log_config=None, lifespan="on")
            self._server = self._server_factory(config)
            self._serve_task = self._loop.create_task(
                self._server.serve(sockets=[self._socket]),
            )
            self._serve_task.add_done_callback(self._on_listener_closed)
            self._state = LifecycleState.RUNNING
            host, port = self.address
            logger.info(
                f"Server running on port {port}",
                extra={"address": f"{host}:{port}", "state": self._state.value},
            )
            return await self._exit_code
        finally:
            self._restore_loop_handlers()
            if self._serve_task is not None and not self._serve_task.done():
                self._serve_task.cancel()
            if self._socket is not None:
                self._socket.close()

    def shutdown(self, exit_code: int = 0) -> None:
        """Begin closing the listener; exit immediately if there is none."""
        if self._server is None:
            logger.info(
                "Shutdown requested with no listener, exiting",
                extra={"exit_code": exit_code},
            )
            self._state = LifecycleState.STOPPED
            self._terminate(exit_code)
            return
        if self._state is not LifecycleState.RUNNING:
            logger.warning(
                "Shutdown already in progress, ignoring request",
                extra={"state": self._state.value, "exit_code": exit_code},
            )
            return

        self._state = LifecycleState.CLOSING
        self._requested_code = exit_code
        logger.info(
            "Closing listener", extra={"state": self._state.value, "exit_code": exit_code},
        )
        self._server.should_exit = True
        self._force_timer = self._loop.call_later(
            self._settings.shutdown_timeout_seconds, self._force_exit,
        )

    def install_crash_handlers(self) -> None:
        """Route uncaught exceptions (main thread and worker threads) to an immediate exit."""
        sys.excepthook = self.handle_uncaught_exception
        threading.excepthook = self._handle_thread_exception

    def install_signal_handlers(self) -> None:
        """Handle SIGINT/SIGTERM before the event loop takes them over.

        Covers the window where the app is still being built; serve() replaces
        these with loop-level handlers once the listener is about to bind.
        """
        for sig in SHUTDOWN_SIGNALS:
            signal.signal(sig, self._on_startup_signal)

    def handle_uncaught_exception(self, exc_type, exc, tb) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            # Interrupted before or after the loop: nothing left to close
            logger.info("Interrupted, exiting", extra={"signal": "SIGINT", "exit_code": 0})
            self._state = LifecycleState.STOPPED
            self._terminate(0)
            return
        logger.critical(
            f"Uncaught exception, exiting: {exc!r}",
            exc_info=(exc_type, exc, tb),
            extra={"exit_code": 1},
        )
        self._state = LifecycleState.CRASHED
        self._terminate(1)

    def _handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        self.handle_uncaught_exception(
            args.exc_type, args.exc_value, args.exc_traceback,
        )

    def _bind(self) -> socket.socket:
        host = self._settings.host
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        return socket.create_server((host, self._settings.port), family=family)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(
            f"{sig.name} received, shutting down gracefully",
            extra={"signal": sig.name},
        )
        self.shutdown(0)

    def _on_startup_signal(self, signum, frame) -> None:
        sig = signal.Signals(signum)
        logger.info(f"{sig.name} received during startup", extra={"signal": sig.name})
        self.shutdown(0)

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        logger.error(
            f"Unhandled asynchronous failure: {context.get('message')}",
            exc_info=context.get("exception"),
            extra={"exit_code": 1},
        )
        self.shutdown(1)

    def _on_listener_closed(self, task: asyncio.Task) -> None:
        if self._force_timer is not None:
            self._force_timer.cancel()
        if task.cancelled():
            code = 1
        elif task.exception() is not None:
            logger.error(
                "Listener failed to close cleanly",
                exc_info=task.exception(),
                extra={"exit_code": 1},
            )
            code = 1
        elif self._state is LifecycleState.CLOSING:
            code = self._requested_code
        else:
            logger.error("Listener stopped unexpectedly", extra={"exit_code": 1})
            code = 1

        self._state = LifecycleState.STOPPED
        logger.info("Server stopped", extra={"state": self._state.value, "exit_code": code})
        if not self._exit_code.done():
            self._exit_code.set_result(code)

    def _force_exit(self) -> None:
        logger.error(
            f"Listener did not close within {self._settings.shutdown_timeout_seconds}s, "
            "forcing shutdown",
            extra={"exit_code": 1},
        )
        self._state = LifecycleState.STOPPED
        self._terminate(1)

    def _install_loop_handlers(self) -> None:
        self._previous_loop_handler = self._loop.get_exception_handler()
        self._loop.set_exception_handler(self._on_loop_exception)
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                self._previous_signal_handlers[sig] = signal.signal(
                    sig, self._threadsafe_signal_handler,
                )

    def _restore_loop_handlers(self) -> None:
        self._loop.set_exception_handler(self._previous_loop_handler)
        for sig in SHUTDOWN_SIGNALS:
            if sig in self._previous_signal_handlers:
                signal.signal(sig, self._previous_signal_handlers.pop(sig))
            else:
                self._loop.remove_signal_handler(sig)

    def _threadsafe_signal_handler(self, signum, frame) -> None:
        self._loop.call_soon_threadsafe(self._on_signal, signal.Signals(signum))


def run(app_factory: Callable[[], FastAPI], settings: Settings) -> NoReturn:
    """Build the app, serve it until shutdown, then exit with the lifecycle's exit code."""
    bootstrap = ProcessBootstrap(app_factory, settings)
    bootstrap.install_crash_handlers()
    bootstrap.install_signal_handlers()
    sys.exit(asyncio.run(bootstrap.serve()))
