from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class BlockedRange:
    date: date
    time_slot: str | None = None  # None blocks the whole day
    slot_number: int | None = None  # None blocks every slot column
    id: str | None = None
    reason: str = "Unavailable"

    @property
    def key(self) -> tuple[date, str | None, int | None]:
        return (self.date, self.time_slot, self.slot_number)

    def matches(self, day: date, time_slot: str, slot_number: int) -> bool:
        if self.date != day:
            return False
        if self.time_slot is not None and self.time_slot != time_slot:
            return False
        if self.slot_number is not None and self.slot_number != slot_number:
            return False
        return True
