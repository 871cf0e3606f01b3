"""
Logging setup for hostbench.

Modules log through ``logging.getLogger(__name__)``. The handlers installed
here render those records and native structlog events through one processor
chain, as console lines or JSON. A run binds its workload and scenario with
:func:`bind_run_context` so every line emitted while it is active carries them.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

import structlog

from hb_common.config.env import parse_bool_env, parse_path_env

LEVEL_ENV = "HB_LOG_LEVEL"
JSON_ENV = "HB_LOG_JSON"
FILE_ENV = "HB_LOG_FILE"

CONSOLE_HANDLER = "hostbench.console"
FILE_HANDLER = "hostbench.file"


def _level_number(value: str | int | None) -> int:
    if value is None or value == "":
        return logging.INFO
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text.upper())
    return level if isinstance(level, int) else logging.INFO


@dataclass(frozen=True)
class LogOptions:
    """Resolved logging options; explicit arguments win over ``HB_LOG_*`` variables."""

    level: int = logging.INFO
    json: bool = False
    log_file: Optional[Path] = None

    @classmethod
    def resolve(
        cls,
        *,
        level: str | int | None = None,
        debug: bool = False,
        json: bool | None = None,
        log_file: str | Path | None = None,
    ) -> "LogOptions":
        if debug:
            resolved_level = logging.DEBUG
        else:
            resolved_level = _level_number(level if level is not None else os.environ.get(LEVEL_ENV))
        if json is None:
            json = bool(parse_bool_env(os.environ.get(JSON_ENV)))
        path = Path(log_file) if log_file is not None else parse_path_env(os.environ.get(FILE_ENV))
        return cls(level=resolved_level, json=json, log_file=path)


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def build_formatter(json: bool) -> structlog.stdlib.ProcessorFormatter:
    processors: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta
    ]
    if json:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return structlog.stdlib.ProcessorFormatter(processors=processors, foreign_pre_chain=_pre_chain())


def _named_handler(handler: logging.Handler, name: str, formatter: logging.Formatter) -> logging.Handler:
    handler.set_name(name)
    handler.setFormatter(formatter)
    return handler


def configure_logging(
    *,
    level: str | int | None = None,
    debug: bool = False,
    log_file: str | Path | None = None,
    json: bool | None = None,
    force: bool = False,
) -> LogOptions:
    """
    Install hostbench's console (and optional file) handler on the root logger.

    Handlers installed by an earlier call are kept unless ``force`` is set, in
    which case they are closed and replaced. Handlers owned by anything else
    are never touched.
    """
    options = LogOptions.resolve(level=level, debug=debug, json=json, log_file=log_file)
    root = logging.getLogger()
    ours = [h for h in root.handlers if h.get_name() in (CONSOLE_HANDLER, FILE_HANDLER)]
    if ours and not force:
        return options
    for handler in ours:
        root.removeHandler(handler)
        handler.close()

    formatter = build_formatter(options.json)
    root.addHandler(_named_handler(logging.StreamHandler(sys.stderr), CONSOLE_HANDLER, formatter))
    if options.log_file is not None:
        options.log_file.parent.mkdir(parents=True, exist_ok=True)
        root.addHandler(
            _named_handler(logging.FileHandler(options.log_file), FILE_HANDLER, formatter)
        )
    root.setLevel(options.level)

    structlog.configure(
        processors=[*_pre_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return options


@contextmanager
def bind_run_context(**values: Any) -> Iterator[None]:
    """Attach ``values`` (``workload``, ``scenario``...) to every log line in this context."""
    bound = {key: value for key, value in values.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield
