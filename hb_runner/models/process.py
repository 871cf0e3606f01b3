"""Value objects describing one external process invocation and its result."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Mapping, Sequence


@dataclass(frozen=True)
class ProcessInvocation:
    """One command to launch; built per call and never shared."""

    command: str
    arguments: tuple[str, ...] = ()
    working_dir: Path | None = None
    elevated: bool = False
    environment: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def of(
        cls,
        command: str,
        *arguments: object,
        working_dir: Path | str | None = None,
        elevated: bool = False,
        environment: Mapping[str, str] | None = None,
    ) -> "ProcessInvocation":
        """Build an invocation, coercing arguments to strings."""
        return cls(
            command=str(command),
            arguments=tuple(str(arg) for arg in arguments),
            working_dir=Path(working_dir) if working_dir is not None else None,
            elevated=elevated,
            environment=dict(environment or {}),
        )

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.arguments]

    @property
    def argument_string(self) -> str:
        return shlex.join(self.arguments)

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)


@dataclass
class ProcessResult:
    """Captured outcome of one finished process."""

    invocation: ProcessInvocation
    exit_code: int
    stdout: str
    stderr: str
    start_time: datetime
    end_time: datetime

    @property
    def elapsed_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def succeeded(self, accepted_exit_codes: Sequence[int] = (0,)) -> bool:
        return self.exit_code in accepted_exit_codes
