from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from ..models import Medication, MedicationReminder

WINDOW_MINUTES = 120


def parse_hhmm(value: Optional[str]) -> Optional[int]:
    """'09:30' -> 570 minutes after midnight; None for anything malformed."""
    try:
        hours, minutes = (int(part) for part in (value or "").strip().split(":"))
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def upcoming_reminders(
    medications: Iterable[Medication],
    now_minutes: int,
    window: int = WINDOW_MINUTES,
) -> List[MedicationReminder]:
    """Doses due strictly after now and strictly before now + window, soonest first.

    The window does not wrap past midnight: at 23:30 a 00:15 dose is not upcoming.
    """
    upcoming: List[MedicationReminder] = []
    for med in medications:
        if not med.active:
            continue
        for time_str in med.times or []:
            due = parse_hhmm(time_str)
            if due is None:
                continue
            if now_minutes < due < now_minutes + window:
                upcoming.append(MedicationReminder(medication=med, time=time_str, timeUntil=due - now_minutes))
    upcoming.sort(key=lambda r: r.timeUntil)
    return upcoming
