"""Contract shared by benchmark report parsers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from hb_common.errors import ResultsParsingError
from hb_runner.models.metrics import Metric

EXCERPT_CHARS = 500


class MetricsParser(ABC):
    """
    Turn one benchmark report into an ordered list of metrics.

    Implementations either return every metric the report holds, in report
    order, or raise ResultsParsingError. Partial results are never returned.
    """

    format_name: str = "report"

    @abstractmethod
    def parse(self, text: str) -> list[Metric]:
        ...

    def fail(self, text: str, message: str, **context: Any) -> ResultsParsingError:
        """Build the error raised for a report that does not match the grammar."""
        return ResultsParsingError(
            f"Invalid {self.format_name}: {message}",
            context={"format": self.format_name, "excerpt": (text or "")[:EXCERPT_CHARS], **context},
        )
