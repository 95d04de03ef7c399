# pybouss/schedules.py

"""
Triggers that decide whether a diagnostic or output writer runs on the current step.

Two kinds exist:
- IterationInterval(period): fires when clock.iteration % period == 0
- TimeInterval(interval): fires once the time elapsed since the last firing is
  at least `interval`

Each trigger remembers the iteration it last answered for, so checking it twice
within one step returns the same answer and does no extra bookkeeping.
"""

from __future__ import annotations

import numbers


class IterationInterval:
    def __init__(self, period: int):
        if isinstance(period, bool) or not isinstance(period, numbers.Integral):
            raise ValueError(f"Iteration period must be an integer, got {period!r}")
        if period < 1:
            raise ValueError(f"Iteration period must be >= 1, got {period}")
        self.period = int(period)
        self._checked_iteration = None
        self._last_answer = False

    def __call__(self, clock) -> bool:
        if clock.iteration == self._checked_iteration:
            return self._last_answer
        self._checked_iteration = clock.iteration
        self._last_answer = (clock.iteration % self.period) == 0
        return self._last_answer

    def __repr__(self):
        return f"IterationInterval({self.period})"


class TimeInterval:
    def __init__(self, interval: float, start_time: float = 0.0):
        interval = float(interval)
        if not interval > 0.0:
            raise ValueError(f"Time interval must be > 0, got {interval}")
        self.interval = interval
        self.last_fired = float(start_time)
        self._checked_iteration = None
        self._last_answer = False

    def __call__(self, clock) -> bool:
        if clock.iteration == self._checked_iteration:
            return self._last_answer
        self._checked_iteration = clock.iteration
        fire = (clock.time - self.last_fired) >= self.interval
        if fire:
            self.last_fired = clock.time
        self._last_answer = fire
        return fire

    def __repr__(self):
        return f"TimeInterval({self.interval}, last_fired={self.last_fired})"


def should_fire(clock, trigger) -> bool:
    """True if `trigger` fires at the clock's current iteration/time."""
    return trigger(clock)


def make_schedule(schedule=None, frequency=None, interval=None, required=True):
    """
    Build a trigger from exactly one of `schedule`, `frequency` (iterations) or
    `interval` (seconds). Returns None when nothing is given and `required` is False.
    """
    given = [x for x in (schedule, frequency, interval) if x is not None]
    if len(given) > 1:
        raise ValueError("Give only one of schedule=, frequency= or interval=")
    if not given:
        if required:
            raise ValueError("One of schedule=, frequency= or interval= is required")
        return None
    if schedule is not None:
        if not isinstance(schedule, (IterationInterval, TimeInterval)):
            raise ValueError(f"Unsupported schedule {schedule!r}")
        return schedule
    if frequency is not None:
        return IterationInterval(frequency)
    return TimeInterval(interval)
