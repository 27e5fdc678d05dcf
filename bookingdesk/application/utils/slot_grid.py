from __future__ import annotations

import re
from dataclasses import dataclass

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::\d{2})?\s*$")


@dataclass(frozen=True)
class SlotGrid:
    times: tuple[str, ...]
    slots_per_time: int = 3

    @property
    def slot_numbers(self) -> tuple[int, ...]:
        return tuple(range(1, self.slots_per_time + 1))

    def has_time(self, value: str | None) -> bool:
        return value in self.times

    def has_slot(self, value: int | None) -> bool:
        return value is not None and 1 <= value <= self.slots_per_time

    def pairs(self) -> list[tuple[str, int]]:
        return [(t, s) for t in self.times for s in self.slot_numbers]


def normalize_time(value: str | None) -> str | None:
    """Normalize "9:30", "09:30" or "09:30:00" to zero-padded HH:MM."""
    if value is None:
        return None
    match = _TIME_RE.match(str(value))
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def build_slot_grid(start: str, end: str, step_minutes: int = 30, slots_per_time: int = 3) -> SlotGrid:
    start_norm = normalize_time(start)
    end_norm = normalize_time(end)
    if start_norm is None or end_norm is None:
        raise ValueError(f"Invalid slot grid bounds: {start!r}..{end!r}")
    if step_minutes <= 0 or slots_per_time <= 0:
        raise ValueError("Slot grid step and slot count must be positive")

    def _minutes(value: str) -> int:
        hour, minute = value.split(":")
        return int(hour) * 60 + int(minute)

    times: list[str] = []
    current = _minutes(start_norm)
    last = _minutes(end_norm)
    while current <= last:
        times.append(f"{current // 60:02d}:{current % 60:02d}")
        current += step_minutes
    return SlotGrid(times=tuple(times), slots_per_time=slots_per_time)


DEFAULT_SLOT_GRID = build_slot_grid("10:00", "16:30", 30, 3)
