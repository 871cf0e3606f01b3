"""Stop token helpers for graceful interruption, deadlines and file-based cancellation."""

from __future__ import annotations

import logging
import signal
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from hb_common.errors import StopRequested

logger = logging.getLogger(__name__)


class StopToken:
    """
    Lightweight cooperative stop controller.

    It can be tripped by signals (SIGINT/SIGTERM), by the presence of a stop
    file on disk, by an elapsed deadline, or explicitly via `request_stop()`.
    Consumers call `should_stop()` between steps and abort work when True;
    background loops use `wait()` so they wake up as soon as a stop arrives.
    """

    def __init__(
        self,
        stop_file: Optional[Path] = None,
        enable_signals: bool = True,
        on_stop: Optional[Callable[[], None]] = None,
        deadline_seconds: Optional[float] = None,
        parent: Optional["StopToken"] = None,
    ) -> None:
        self.stop_file = stop_file
        self._on_stop = on_stop
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._parent = parent
        self._children: List["StopToken"] = []
        self._deadline = (
            time.monotonic() + deadline_seconds if deadline_seconds is not None else None
        )
        self._prev_handlers: Dict[int, Callable] = {}
        if enable_signals:
            self._install_signal_handlers()

    def _install_signal_handlers(self) -> None:
        """Capture SIGINT/SIGTERM and mark the token as stopped."""
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._prev_handlers[sig] = signal.getsignal(sig)
                signal.signal(sig, self._handle_signal)  # type: ignore[arg-type]
            except (ValueError, OSError):
                # Only the main thread may install handlers.
                continue

    def _handle_signal(self, signum: int, frame) -> None:  # type: ignore[override]
        logger.warning("Received signal %s, requesting stop", signum)
        self.request_stop()

    def request_stop(self) -> None:
        """Mark the token as stopped and trigger the callback once."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            children = list(self._children)
        for child in children:
            child.request_stop()
        if self._on_stop:
            try:
                self._on_stop()
            except Exception:
                logger.exception("Stop callback failed")

    def should_stop(self) -> bool:
        """Return True when a stop was requested, the deadline passed or the stop file exists."""
        if self._event.is_set():
            return True
        if self._parent is not None and self._parent.should_stop():
            self.request_stop()
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            logger.warning("Run deadline elapsed, requesting stop")
            self.request_stop()
            return True
        if self.stop_file and self.stop_file.exists():
            self.request_stop()
            return True
        return False

    def child(self) -> "StopToken":
        """
        Return a token tripped by this one but stoppable on its own.

        Background tasks use a child so the owner can stop them without
        cancelling the whole run.
        """
        token = StopToken(enable_signals=False, parent=self)
        token._deadline = self._deadline
        with self._lock:
            self._children.append(token)
            stopped = self._event.is_set()
        if stopped:
            token.request_stop()
        return token

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds or until a stop arrives; return should_stop()."""
        if self._deadline is not None:
            timeout = max(0.0, min(timeout, self._deadline - time.monotonic()))
        self._event.wait(timeout)
        return self.should_stop()

    def restore(self) -> None:
        """Restore original signal handlers."""
        for sig, handler in self._prev_handlers.items():
            try:
                signal.signal(sig, handler)  # type: ignore[arg-type]
            except (ValueError, OSError):
                continue
        self._prev_handlers.clear()

    def __enter__(self) -> "StopToken":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()


_ACTIVE_TOKEN: ContextVar[Optional[StopToken]] = ContextVar("hb_active_stop_token", default=None)


@contextmanager
def bound_stop_token(token: Optional[StopToken]) -> Iterator[Optional[StopToken]]:
    """Make ``token`` the active token for code running in this context."""
    reset = _ACTIVE_TOKEN.set(token)
    try:
        yield token
    finally:
        _ACTIVE_TOKEN.reset(reset)


def active_stop_token(explicit: Optional[StopToken] = None) -> Optional[StopToken]:
    """Return ``explicit`` when given, otherwise the token bound to this context."""
    return explicit if explicit is not None else _ACTIVE_TOKEN.get()


def raise_if_stopped(explicit: Optional[StopToken] = None, where: str = "") -> None:
    token = active_stop_token(explicit)
    if token is not None and token.should_stop():
        raise StopRequested(f"Stopped before {where}" if where else "Stopped by user")
