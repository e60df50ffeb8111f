"""Cycle boundary policies — pure functions of an instant.

A policy maps any UTC instant to the CycleWindow that contains it. Windows are
half-open [start, end), contiguous and non-overlapping, so two callers asking
for "now" always agree on the row to create.

Two rules are supported:
  - FixedLengthCyclePolicy: every N days from a fixed anchor (weekly by default)
  - SemiMonthlyCyclePolicy: 1st–15th and 16th–end of each calendar month
"""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from src.mp_common.datetime_utils import ensure_utc
from src.mp_common.errors import PipelineConfigError


@dataclass(frozen=True)
class CycleWindow:
    start: datetime   # inclusive
    end: datetime     # exclusive
    cutoff: datetime  # end + grace; rollover is allowed from here on

    def contains(self, t: datetime) -> bool:
        return self.start <= ensure_utc(t) < self.end


class CyclePolicy(Protocol):
    def window_for(self, t: datetime) -> CycleWindow: ...


class _PolicyBase:
    def __init__(self, grace: timedelta) -> None:
        if grace < timedelta(0):
            raise ValueError(f"Cutoff grace must be non-negative, got {grace}")
        self.grace = grace

    def window_for(self, t: datetime) -> CycleWindow:
        raise NotImplementedError

    def _window(self, start: datetime, end: datetime) -> CycleWindow:
        return CycleWindow(start=start, end=end, cutoff=end + self.grace)

    def next_window(self, window: CycleWindow) -> CycleWindow:
        return self.window_for(window.end)

    def previous_window(self, window: CycleWindow) -> CycleWindow:
        return self.window_for(window.start - timedelta(microseconds=1))

    def windows_between(self, start: datetime, end: datetime) -> Iterator[CycleWindow]:
        """Every window overlapping [start, end), in order."""
        end = ensure_utc(end)
        window = self.window_for(start)
        while window.start < end:
            yield window
            window = self.next_window(window)


class FixedLengthCyclePolicy(_PolicyBase):
    def __init__(self, anchor: datetime, period: timedelta, grace: timedelta) -> None:
        super().__init__(grace)
        if period <= timedelta(0):
            raise ValueError(f"Cycle period must be positive, got {period}")
        self.anchor = ensure_utc(anchor)
        self.period = period

    def window_for(self, t: datetime) -> CycleWindow:
        # timedelta // timedelta floors, so instants before the anchor work too
        n = (ensure_utc(t) - self.anchor) // self.period
        start = self.anchor + n * self.period
        return self._window(start, start + self.period)


class SemiMonthlyCyclePolicy(_PolicyBase):
    def window_for(self, t: datetime) -> CycleWindow:
        t = ensure_utc(t)
        first = datetime(t.year, t.month, 1, tzinfo=timezone.utc)
        sixteenth = first.replace(day=16)
        if t < sixteenth:
            return self._window(first, sixteenth)
        if t.month == 12:
            next_first = datetime(t.year + 1, 1, 1, tzinfo=timezone.utc)
        else:
            next_first = datetime(t.year, t.month + 1, 1, tzinfo=timezone.utc)
        return self._window(sixteenth, next_first)


def build_cycle_policy(
    kind: str,
    period_days: int,
    anchor: str,
    grace_hours: int,
    auto_confirm_hours: int,
) -> FixedLengthCyclePolicy | SemiMonthlyCyclePolicy:
    """Build the configured policy. Raises PipelineConfigError on bad settings."""
    if grace_hours < auto_confirm_hours:
        # A session ending just before the boundary must auto-confirm before payout
        raise PipelineConfigError(
            f"CYCLE_CUTOFF_GRACE_HOURS ({grace_hours}) must be >= "
            f"AUTO_CONFIRM_HOURS ({auto_confirm_hours})"
        )
    grace = timedelta(hours=grace_hours)
    if kind == "fixed":
        try:
            anchor_dt = datetime.fromisoformat(anchor)
        except ValueError:
            raise PipelineConfigError(f"CYCLE_ANCHOR is not ISO-8601: {anchor!r}") from None
        if period_days <= 0:
            raise PipelineConfigError(f"CYCLE_PERIOD_DAYS must be positive, got {period_days}")
        return FixedLengthCyclePolicy(anchor_dt, timedelta(days=period_days), grace)
    if kind == "semi_monthly":
        return SemiMonthlyCyclePolicy(grace)
    raise PipelineConfigError(f"Unknown CYCLE_KIND: {kind!r}")
