"""Supervised execution of external processes."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Protocol, Sequence

from hb_common.errors import ProcessExecutionError, StopRequested
from hb_runner.engine.cleanup import CleanupRegistry
from hb_runner.engine.stop_token import StopToken, active_stop_token, raise_if_stopped
from hb_runner.models.process import ProcessInvocation, ProcessResult
from hb_runner.telemetry import TelemetrySink

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_CODES: tuple[int, ...] = (0,)
KILL_GRACE_SECONDS = 5.0


@dataclass
class ProcessHandle:
    """Host-specific handle for a launched process."""

    invocation: ProcessInvocation
    pid: int | None = None
    native: Any = None
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    killed: bool = False

    @property
    def finished(self) -> bool:
        return self.exit_code is not None


class ProcessHost(Protocol):
    """Launches, waits on and kills processes on the local host."""

    def start(
        self, invocation: ProcessInvocation, environment: Mapping[str, str]
    ) -> ProcessHandle:
        ...

    def wait(self, handle: ProcessHandle, timeout: float) -> int | None:
        """Return the exit code, or None when the process is still running after ``timeout``."""
        ...

    def kill(self, handle: ProcessHandle) -> None:
        ...


def _running_as_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


class SubprocessHost:
    """ProcessHost backed by subprocess.Popen with full output capture."""

    def __init__(self, sudo_command: Sequence[str] = ("sudo", "-n")) -> None:
        self._sudo_command = list(sudo_command)

    def build_argv(self, invocation: ProcessInvocation) -> list[str]:
        """Apply elevation at the boundary; root hosts run elevated commands as-is."""
        if invocation.elevated and not _running_as_root():
            return [*self._sudo_command, *invocation.argv]
        return invocation.argv

    def start(
        self, invocation: ProcessInvocation, environment: Mapping[str, str]
    ) -> ProcessHandle:
        env = {**os.environ, **environment, **invocation.environment}
        proc = subprocess.Popen(
            self.build_argv(invocation),
            cwd=invocation.working_dir,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        return ProcessHandle(invocation=invocation, pid=proc.pid, native=proc)

    def wait(self, handle: ProcessHandle, timeout: float) -> int | None:
        if handle.finished:
            return handle.exit_code
        proc: subprocess.Popen[str] = handle.native
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None
        self._record(handle, stdout, stderr, proc.returncode)
        return handle.exit_code

    def kill(self, handle: ProcessHandle) -> None:
        proc: subprocess.Popen[str] | None = handle.native
        if proc is None or handle.finished or proc.poll() is not None:
            logger.debug("Process %s already exited; nothing to kill", handle.pid)
            if proc is not None and not handle.finished:
                self._drain(handle, proc)
            return
        logger.info("Terminating process %s (%s)", handle.pid, handle.invocation.command)
        proc.terminate()
        try:
            stdout, stderr = proc.communicate(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("Force killing process %s", handle.pid)
            proc.kill()
            stdout, stderr = proc.communicate()
        handle.killed = True
        self._record(handle, stdout, stderr, proc.returncode)

    def _drain(self, handle: ProcessHandle, proc: subprocess.Popen[str]) -> None:
        stdout, stderr = proc.communicate()
        self._record(handle, stdout, stderr, proc.returncode)

    @staticmethod
    def _record(
        handle: ProcessHandle, stdout: str | None, stderr: str | None, returncode: int
    ) -> None:
        handle.stdout += stdout or ""
        handle.stderr += stderr or ""
        handle.exit_code = returncode


@dataclass
class _HandleSlot:
    handle: Optional[ProcessHandle] = None


class ProcessRunner:
    """
    Run one external process at a time on behalf of a workload.

    Every launched process is registered with the run's CleanupRegistry so a
    forced teardown can terminate it mid-flight. Output is captured in full
    and attached to ProcessExecutionError when the exit code falls outside
    the accepted set. A tripped stop token terminates the process and raises
    StopRequested; partial output is never returned as a success.
    """

    def __init__(
        self,
        cleanup: CleanupRegistry,
        telemetry: TelemetrySink,
        host: ProcessHost | None = None,
        stop_token: StopToken | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        self._cleanup = cleanup
        self._telemetry = telemetry
        self._host = host or SubprocessHost()
        self._stop_token = stop_token
        self._poll_interval = poll_interval
        self._environment: dict[str, str] = {}

    @property
    def environment(self) -> dict[str, str]:
        """Process-scoped variables applied to every child."""
        return dict(self._environment)

    def set_environment(self, name: str, value: str) -> None:
        logger.debug("Setting child environment %s=%s", name, value)
        self._environment[name] = str(value)

    def run(
        self,
        invocation: ProcessInvocation,
        stop_token: StopToken | None = None,
        accepted_exit_codes: Sequence[int] = DEFAULT_SUCCESS_CODES,
        cancellable: bool = True,
    ) -> ProcessResult:
        """
        Launch ``invocation``, wait for it, and classify the outcome.

        Non-cancellable invocations ignore the stop token; teardown uses them
        to shut services down after a cancellation.
        """
        token = active_stop_token(stop_token or self._stop_token) if cancellable else None
        if token is not None:
            raise_if_stopped(token, where=f"launching '{invocation.command}'")

        slot = _HandleSlot()
        self._cleanup.register(
            lambda: self._kill_slot(slot),
            f"kill process '{invocation.command_line}'",
        )

        logger.info(
            "Executing process '%s' at directory '%s'%s",
            invocation.command_line,
            invocation.working_dir or os.getcwd(),
            " (elevated)" if invocation.elevated else "",
        )
        start_time = datetime.now(timezone.utc)
        try:
            slot.handle = self._host.start(invocation, self._environment)
        except OSError as exc:
            end_time = datetime.now(timezone.utc)
            self._report(invocation, None, start_time, end_time, error=str(exc))
            raise ProcessExecutionError(
                f"Failed to launch '{invocation.command}'",
                context=self._context(invocation),
                cause=exc,
            ) from exc

        handle = slot.handle
        cancelled = False
        while True:
            exit_code = self._host.wait(handle, self._poll_interval)
            if exit_code is not None:
                break
            if token is not None and token.should_stop():
                logger.warning(
                    "Stop requested while '%s' was running; terminating", invocation.command
                )
                self._host.kill(handle)
                cancelled = True
                break

        end_time = datetime.now(timezone.utc)
        result = ProcessResult(
            invocation=invocation,
            exit_code=handle.exit_code if handle.exit_code is not None else -1,
            stdout=handle.stdout,
            stderr=handle.stderr,
            start_time=start_time,
            end_time=end_time,
        )
        self._report(invocation, result.exit_code, start_time, end_time, cancelled=cancelled)

        if cancelled:
            raise StopRequested(f"Process '{invocation.command}' terminated by stop request")

        if not result.succeeded(accepted_exit_codes):
            logger.error(
                "Process '%s' failed with exit code %s: %s",
                invocation.command_line,
                result.exit_code,
                result.stderr or result.stdout,
            )
            raise ProcessExecutionError(
                f"Process '{invocation.command}' exited with code {result.exit_code}",
                context={
                    **self._context(invocation),
                    "exit_code": result.exit_code,
                    "accepted_exit_codes": list(accepted_exit_codes),
                    "stdout": result.stdout,
                    "stderr": result.stderr,
                },
            )
        if token is not None:
            raise_if_stopped(token, where=f"using the output of '{invocation.command}'")
        return result

    def _kill_slot(self, slot: _HandleSlot) -> None:
        if slot.handle is None:
            return
        self._host.kill(slot.handle)

    @staticmethod
    def _context(invocation: ProcessInvocation) -> dict[str, Any]:
        return {
            "command": invocation.command,
            "arguments": invocation.argument_string,
            "working_dir": invocation.working_dir,
            "elevated": invocation.elevated,
        }

    def _report(
        self,
        invocation: ProcessInvocation,
        exit_code: int | None,
        start_time: datetime,
        end_time: datetime,
        *,
        cancelled: bool = False,
        error: str | None = None,
    ) -> None:
        context: dict[str, Any] = {
            **self._context(invocation),
            "exit_code": exit_code,
            "start_time": start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "elapsed_seconds": (end_time - start_time).total_seconds(),
            "cancelled": cancelled,
        }
        if error:
            context["error"] = error
        try:
            self._telemetry.emit_event("process.executed", context)
        except Exception:
            logger.exception("Failed to report process execution to telemetry")
