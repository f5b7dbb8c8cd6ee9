"""Shift calendar — the three fixed daily shifts and their time-window arithmetic.

All wall-clock questions are answered in the operational timezone
(``TIMEZONE``), never the host's local time:

  - morning  07:00 – 15:00
  - evening  15:00 – 23:00
  - night    23:00 – 07:00 (next calendar day)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from laborhub.common.constants import FALLBACK_SHIFT_HOURS, TIMEZONE, ShiftLabel

LOCAL_TZ = ZoneInfo(TIMEZONE)


@dataclass(frozen=True)
class ShiftWindow:
    label: ShiftLabel
    start_hour: int
    end_hour: int

    @property
    def crosses_midnight(self) -> bool:
        return self.end_hour <= self.start_hour


SHIFTS: dict[ShiftLabel, ShiftWindow] = {
    ShiftLabel.morning: ShiftWindow(ShiftLabel.morning, 7, 15),
    ShiftLabel.evening: ShiftWindow(ShiftLabel.evening, 15, 23),
    ShiftLabel.night: ShiftWindow(ShiftLabel.night, 23, 7),
}

SHIFT_START_HOURS: dict[int, ShiftLabel] = {
    window.start_hour: label for label, window in SHIFTS.items()
}


# ── Timezone helpers ────────────────────────────────────────────────

def ensure_aware(instant: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_local(instant: datetime) -> datetime:
    return ensure_aware(instant).astimezone(LOCAL_TZ)


def local_now() -> datetime:
    return to_local(utc_now())


def local_date(instant: datetime) -> date:
    """Calendar day of *instant* in the operational timezone."""
    return to_local(instant).date()


# ── Shift questions ─────────────────────────────────────────────────

def detect_shift(instant: datetime) -> ShiftLabel:
    """Which shift a clock-in at *instant* falls into (half-open windows)."""
    hour = to_local(instant).hour
    if 7 <= hour < 15:
        return ShiftLabel.morning
    if 15 <= hour < 23:
        return ShiftLabel.evening
    return ShiftLabel.night


def shift_end(instant: datetime, shift: Union[ShiftLabel, str, None]) -> datetime:
    """When the shift clocked into at *instant* ends, as a UTC datetime.

    Morning and evening end on the same local day; night ends at 07:00 the
    following local day. An unknown label falls back to eight hours after
    clock-in.
    """
    instant = ensure_aware(instant)
    try:
        window = SHIFTS[ShiftLabel(shift)]
    except ValueError:
        return (instant + timedelta(hours=FALLBACK_SHIFT_HOURS)).astimezone(timezone.utc)

    day = local_date(instant)
    if window.crosses_midnight:
        day += timedelta(days=1)
    end_local = datetime.combine(day, time(window.end_hour), tzinfo=LOCAL_TZ)
    return end_local.astimezone(timezone.utc)


def shift_for_start_hour(hour: int) -> Optional[ShiftLabel]:
    return SHIFT_START_HOURS.get(hour)
