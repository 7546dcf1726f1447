# carebook/services/slot_service.py
# Pure slot generation: a weekly rule plus a date in, an ordered list of slots out. No I/O.
from datetime import date, datetime, time, timedelta
from functools import lru_cache
from typing import List, NamedTuple, Optional, Tuple


class Slot(NamedTuple):
    start_time: time
    duration_minutes: int

    @property
    def end_time(self) -> time:
        return (datetime.combine(date.min, self.start_time) + timedelta(minutes=self.duration_minutes)).time()


def weekday_index(target_date: date) -> int:
    """Day index in the stored encoding: 0=Sunday..6=Saturday."""
    return (target_date.weekday() + 1) % 7


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


@lru_cache(maxsize=1024)
def _expand(start_time: time, end_time: time, duration: int, break_start: Optional[time], break_end: Optional[time]) -> Tuple[Slot, ...]:
    # Keyed on the rule's values, so an edited rule never hits a stale entry.
    start = _minutes(start_time)
    end = _minutes(end_time)
    has_break = break_start is not None and break_end is not None and break_start != break_end
    if has_break:
        break_from, break_to = _minutes(break_start), _minutes(break_end)

    slots = []
    current = start
    while current + duration <= end:
        slot_end = current + duration
        if has_break and current < break_to and slot_end > break_from:
            current = slot_end
            continue
        slots.append(Slot(time(current // 60, current % 60), duration))
        current = slot_end
    return tuple(slots)


def generate_slots(rule, target_date: date) -> List[Slot]:
    """
    Expand a schedule rule into the bookable slots for `target_date`.

    Steps forward from start_time by slot_duration_minutes; a slot is only emitted if it
    ends at or before end_time. Slots overlapping [break_start, break_end) are skipped
    entirely, never shortened. A missing rule, an unavailable day, or a rule for a
    different weekday yields an empty list.
    """
    if rule is None or not rule.is_available:
        return []
    if rule.day_of_week is not None and rule.day_of_week != weekday_index(target_date):
        return []
    duration = rule.slot_duration_minutes
    if not duration or duration <= 0:
        # The schedule store rejects these; a row that slipped past it is treated as unbookable.
        return []
    return list(_expand(rule.start_time, rule.end_time, duration, rule.break_start, rule.break_end))


def slot_starts(rule, target_date: date) -> List[time]:
    return [slot.start_time for slot in generate_slots(rule, target_date)]
