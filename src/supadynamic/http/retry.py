"""Retry schedule, region rotation and policy for HTTP dispatch."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from supadynamic.core.config import DEFAULT_DELAY_SCHEDULE


class DelaySchedule:
    """Fixed table of waits (seconds) indexed by attempt number.

    Entry ``i`` is the wait before attempt ``i``; entry 0 is never slept
    because the first attempt goes out immediately.
    """

    def __init__(self, delays: Sequence[float] = DEFAULT_DELAY_SCHEDULE) -> None:
        if not delays:
            raise ValueError("delay schedule cannot be empty")
        if any(d < 0 for d in delays):
            raise ValueError("delay schedule entries must be >= 0")
        self._delays: Tuple[float, ...] = tuple(float(d) for d in delays)

    def __len__(self) -> int:
        return len(self._delays)

    def __iter__(self):
        return iter(self._delays)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DelaySchedule):
            return self._delays == other._delays
        return NotImplemented

    def __repr__(self) -> str:
        return f"DelaySchedule({list(self._delays)!r})"

    def supports(self, max_retries: int) -> bool:
        """Return True if the table covers attempts ``0..max_retries``."""
        return len(self._delays) >= max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Return the wait before ``attempt`` (zero-based)."""
        return self._delays[attempt]

    def total(self, max_retries: int) -> float:
        """Sum of all waits a call with ``max_retries`` can incur."""
        return sum(self._delays[1 : max_retries + 1])


class RegionCursor:
    """Round-robin over an ordered, non-empty list of regions."""

    def __init__(self, regions: Sequence[str]) -> None:
        if not regions:
            raise ValueError("regions cannot be empty")
        self._regions: Tuple[str, ...] = tuple(regions)
        self._index = 0

    @property
    def current(self) -> str:
        return self._regions[self._index % len(self._regions)]

    def advance(self) -> str:
        """Return the current region and move to the next one (wrapping)."""
        region = self.current
        self._index = (self._index + 1) % len(self._regions)
        return region


@dataclass
class RetryPolicy:
    """Retry configuration for a single dispatch.

    Attributes:
        max_retries: Retries after the first attempt (0 = one attempt).
        schedule: Delay table; must have at least ``max_retries + 1`` entries.
        allowed_regions: Optional regions rotated into ``x-region``.
    """

    max_retries: int = 0
    schedule: DelaySchedule = field(default_factory=DelaySchedule)
    allowed_regions: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if not self.schedule.supports(self.max_retries):
            raise ValueError(
                f"retry delay schedule must have at least {self.max_retries + 1} elements"
            )
        if self.allowed_regions is not None:
            if len(self.allowed_regions) == 0:
                raise ValueError("allowed_regions cannot be an empty array")
            self.allowed_regions = tuple(self.allowed_regions)

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def region_cursor(self) -> Optional[RegionCursor]:
        """Fresh cursor for one dispatch, or None when regions are unset."""
        if self.allowed_regions is None:
            return None
        return RegionCursor(self.allowed_regions)
