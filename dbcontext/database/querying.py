"""Helpers shared by the DB-API based adapters."""

import math
import time
from typing import Any, List, Optional, Sequence

from .formatting import format_value
from .models import SampleResult

DEFAULT_SAMPLE_ROW_LIMIT = 10


class Deadline:
    """A wall-clock budget shared by every query of one operation.

    A single discover() call issues many catalog queries; each one gets
    whatever is left of the caller's timeout rather than a fresh budget.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unbounded.

        Raises:
            TimeoutError: if the deadline has already passed
        """
        if self._expires_at is None:
            return None
        left = self._expires_at - time.monotonic()
        if left <= 0:
            raise TimeoutError(f"deadline of {self.timeout:g}s exceeded")
        return left

    def remaining_ms(self) -> int:
        """Milliseconds left for server-side statement timeouts; 0 means unbounded."""
        left = self.remaining()
        if left is None:
            return 0
        return max(1, int(math.ceil(left * 1000)))

    @property
    def expires_at(self) -> Optional[float]:
        return self._expires_at


def effective_sample_limit(limit: int) -> int:
    return limit if limit > 0 else DEFAULT_SAMPLE_ROW_LIMIT


def sample_result_from_rows(description: Optional[Sequence[Sequence[Any]]], rows: Sequence[Sequence[Any]]) -> SampleResult:
    """Build a SampleResult from a DB-API cursor description and fetched rows."""
    columns: List[str] = [str(col[0]) for col in (description or [])]
    result = SampleResult(columns=columns)
    for row in rows:
        result.rows.append([format_value(value) for value in row])
    return result
