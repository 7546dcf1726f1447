# tests/test_slot_service.py
from datetime import date, time
from types import SimpleNamespace

from carebook.services.slot_service import Slot, generate_slots, slot_starts, weekday_index

MONDAY = date(2025, 3, 10)


def rule(start=time(9, 0), end=time(17, 0), duration=30, break_start=None, break_end=None,
         is_available=True, day_of_week=1):
    return SimpleNamespace(
        day_of_week=day_of_week, is_available=is_available, start_time=start, end_time=end,
        slot_duration_minutes=duration, break_start=break_start, break_end=break_end,
    )


def test_weekday_index_is_sunday_first():
    assert weekday_index(date(2025, 3, 9)) == 0  # Sunday
    assert weekday_index(MONDAY) == 1
    assert weekday_index(date(2025, 3, 15)) == 6  # Saturday


def test_monday_with_lunch_break_yields_fourteen_slots():
    slots = generate_slots(rule(break_start=time(12, 0), break_end=time(13, 0)), MONDAY)

    assert len(slots) == 14
    assert [s.start_time for s in slots[:6]] == [
        time(9, 0), time(9, 30), time(10, 0), time(10, 30), time(11, 0), time(11, 30)
    ]
    assert slots[6].start_time == time(13, 0)
    assert slots[-1].start_time == time(16, 30)
    assert all(s.duration_minutes == 30 for s in slots)


def test_generation_is_deterministic():
    r = rule(break_start=time(12, 0), break_end=time(13, 0))
    assert generate_slots(r, MONDAY) == generate_slots(r, MONDAY)


def test_slots_never_run_past_end_time():
    slots = generate_slots(rule(start=time(9, 0), end=time(10, 45), duration=45), MONDAY)

    assert slot_starts(rule(start=time(9, 0), end=time(10, 45), duration=45), MONDAY) == [time(9, 0), time(9, 45)]
    assert all(s.end_time <= time(10, 45) for s in slots)


def test_slots_overlapping_break_are_skipped_not_shortened():
    r = rule(start=time(9, 0), end=time(12, 0), duration=40, break_start=time(10, 0), break_end=time(10, 30))

    slots = generate_slots(r, MONDAY)

    assert slots == [Slot(time(9, 0), 40), Slot(time(11, 0), 40)]


def test_zero_length_break_is_no_break():
    with_break = generate_slots(rule(break_start=time(12, 0), break_end=time(12, 0)), MONDAY)
    without = generate_slots(rule(), MONDAY)
    assert with_break == without
    assert len(without) == 16


def test_unavailable_missing_or_other_weekday_rule_yields_nothing():
    assert generate_slots(None, MONDAY) == []
    assert generate_slots(rule(is_available=False), MONDAY) == []
    assert generate_slots(rule(day_of_week=2), MONDAY) == []


def test_non_positive_duration_yields_nothing():
    assert generate_slots(rule(duration=0), MONDAY) == []
    assert generate_slots(rule(duration=-15), MONDAY) == []


def test_edited_rule_values_are_not_served_from_a_stale_expansion():
    r = rule()
    assert len(generate_slots(r, MONDAY)) == 16
    r.slot_duration_minutes = 60
    assert len(generate_slots(r, MONDAY)) == 8


def test_slot_end_time():
    assert Slot(time(16, 30), 30).end_time == time(17, 0)
