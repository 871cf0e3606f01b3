"""Retry policies keyed by error reason."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, TypeVar

from hb_common.errors import ErrorReason, HBError, StopRequested
from hb_runner.engine.stop_token import StopToken

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry an operation when it fails with one of ``retry_reasons``.

    ``max_attempts`` counts the first try. The delay before attempt n+1 is
    ``n * backoff_seconds``. Errors with other reasons propagate immediately.
    """

    max_attempts: int = 5
    backoff_seconds: float = 2.0
    retry_reasons: FrozenSet[ErrorReason] = field(
        default_factory=lambda: frozenset({ErrorReason.DEPENDENCY_INSTALLATION_FAILED})
    )

    def delay_for(self, attempt: int) -> float:
        return attempt * self.backoff_seconds

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        return isinstance(error, HBError) and error.reason in self.retry_reasons


NO_RETRY = RetryPolicy(max_attempts=1, retry_reasons=frozenset())
INSTALLATION_RETRY = RetryPolicy()


def run_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy = INSTALLATION_RETRY,
    *,
    stop_token: StopToken | None = None,
    description: str = "operation",
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Run ``operation`` under ``policy``; the last error propagates once attempts are exhausted."""
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except HBError as exc:
            if not policy.should_retry(exc, attempt):
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %s/%s, %s): %s. Retrying in %.1fs",
                description,
                attempt,
                policy.max_attempts,
                exc.reason.value,
                exc,
                delay,
            )
            if sleep is not None:
                sleep(delay)
            elif stop_token is not None:
                stop_token.wait(delay)
            else:
                time.sleep(delay)
            if stop_token is not None and stop_token.should_stop():
                raise StopRequested(f"Stopped while retrying {description}") from exc
