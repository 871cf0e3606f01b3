"""Tests for reason-keyed retries."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from hb_common.errors import DependencyError, ErrorReason, StopRequested
from hb_runner.engine.retry import INSTALLATION_RETRY, NO_RETRY, RetryPolicy, run_with_retry
from hb_runner.engine.stop_token import StopToken

pytestmark = [pytest.mark.unit, pytest.mark.unit_runner]


def _install_failure() -> DependencyError:
    return DependencyError("mirror down", reason=ErrorReason.DEPENDENCY_INSTALLATION_FAILED)


class TestRunWithRetry:
    def test_installation_failures_retry_five_times_with_linear_backoff(self):
        operation = MagicMock(side_effect=_install_failure())
        sleep = MagicMock()

        with pytest.raises(DependencyError):
            run_with_retry(operation, INSTALLATION_RETRY, sleep=sleep)

        assert operation.call_count == 5
        assert [c.args[0] for c in sleep.call_args_list] == [2.0, 4.0, 6.0, 8.0]

    def test_success_after_transient_failures(self):
        operation = MagicMock(side_effect=[_install_failure(), _install_failure(), "/opt/pkg"])
        sleep = MagicMock()

        assert run_with_retry(operation, sleep=sleep) == "/opt/pkg"
        assert operation.call_count == 3
        assert sleep.call_count == 2

    def test_other_reasons_are_not_retried(self):
        operation = MagicMock(side_effect=DependencyError("absent"))
        sleep = MagicMock()

        with pytest.raises(DependencyError):
            run_with_retry(operation, sleep=sleep)

        operation.assert_called_once()
        sleep.assert_not_called()

    def test_no_retry_policy(self):
        operation = MagicMock(side_effect=_install_failure())
        with pytest.raises(DependencyError):
            run_with_retry(operation, NO_RETRY, sleep=MagicMock())
        operation.assert_called_once()

    def test_non_hb_errors_propagate(self):
        operation = MagicMock(side_effect=KeyError("x"))
        with pytest.raises(KeyError):
            run_with_retry(operation, sleep=MagicMock())

    def test_stop_between_attempts(self):
        token = StopToken(enable_signals=False)
        operation = MagicMock(side_effect=_install_failure())

        with pytest.raises(StopRequested):
            run_with_retry(
                operation,
                RetryPolicy(max_attempts=3, backoff_seconds=0.0),
                stop_token=token,
                sleep=lambda _delay: token.request_stop(),
            )
        operation.assert_called_once()


def test_delay_for():
    policy = RetryPolicy(backoff_seconds=1.5)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.5, 3.0, 4.5]
