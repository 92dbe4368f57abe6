"""
Slot generation tests - rule expansion, conflicts, caps, blocked dates.
"""
from datetime import date, time

import pytest

from lawdesk.services.slots import (
    REASON_BLOCKED,
    REASON_BOOKED,
    REASON_DAILY_LIMIT,
    TimeSlot,
    check_slot_conflict,
    generate_slots,
)

LAWYER = "lawyer-1"
FIRM = "firm-1"
MONDAY = date(2026, 3, 2)


def _rule(start="09:00", end="10:00", duration=30, buffer=0, max_per_day=None, day_of_week=1, **extra):
    rule = {
        "owner_id": LAWYER,
        "day_of_week": day_of_week,
        "start_time": start,
        "end_time": end,
        "slot_duration_minutes": duration,
        "buffer_minutes": buffer,
        "max_per_day": max_per_day,
        "active": True,
    }
    rule.update(extra)
    return rule


def _appointment(at, duration=30, status="upcoming", day=MONDAY, lawyer=LAWYER):
    return {
        "lawyer_id": lawyer,
        "appointment_date": day.isoformat(),
        "appointment_time": at,
        "duration_minutes": duration,
        "status": status,
    }


def _times(slots):
    return [s.time for s in slots]


class TestRuleExpansion:
    def test_one_hour_window_gives_two_slots(self):
        slots = generate_slots(LAWYER, MONDAY, [_rule()])
        assert _times(slots) == ["09:00", "09:30"]
        assert all(s.available for s in slots)

    def test_buffer_consumes_second_slot(self):
        """09:00-09:30 plus 15m buffer puts the next start at 09:45; 10:15 overruns 10:00."""
        slots = generate_slots(LAWYER, MONDAY, [_rule(buffer=15)])
        assert _times(slots) == ["09:00"]

    def test_slot_ending_exactly_at_window_end_is_valid(self):
        slots = generate_slots(LAWYER, MONDAY, [_rule(start="09:00", end="10:30", duration=45)])
        assert _times(slots) == ["09:00", "09:45"]

    def test_monday_morning_gives_six_slots(self):
        slots = generate_slots(LAWYER, MONDAY, [_rule(end="12:00")])
        assert _times(slots) == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"]
        assert all(s.available for s in slots)
        assert all(s.duration_minutes == 30 for s in slots)

    def test_no_rule_for_weekday_returns_empty(self):
        tuesday = date(2026, 3, 3)
        assert generate_slots(LAWYER, tuesday, [_rule()]) == []

    def test_sunday_is_day_zero(self):
        sunday = date(2026, 3, 1)
        slots = generate_slots(LAWYER, sunday, [_rule(day_of_week=0)])
        assert _times(slots) == ["09:00", "09:30"]

    def test_inactive_rule_ignored(self):
        assert generate_slots(LAWYER, MONDAY, [_rule(active=False)]) == []

    def test_other_lawyers_rule_ignored(self):
        assert generate_slots(LAWYER, MONDAY, [_rule(owner_id="someone-else")]) == []

    def test_multiple_rules_each_contribute(self):
        rules = [_rule("09:00", "10:00"), _rule("14:00", "15:00")]
        slots = generate_slots(LAWYER, MONDAY, rules)
        assert _times(slots) == ["09:00", "09:30", "14:00", "14:30"]

    def test_overlapping_rules_repeat_times_by_default(self):
        rules = [_rule("09:00", "10:00"), _rule("09:30", "10:30")]
        slots = generate_slots(LAWYER, MONDAY, rules)
        assert _times(slots) == ["09:00", "09:30", "09:30", "10:00"]

    def test_dedupe_collapses_repeated_times(self):
        rules = [_rule("09:00", "10:00"), _rule("09:30", "10:30")]
        slots = generate_slots(LAWYER, MONDAY, rules, dedupe=True)
        assert _times(slots) == ["09:00", "09:30", "10:00"]

    def test_dedupe_keeps_unavailable_variant(self):
        rules = [_rule("09:00", "10:00", duration=30), _rule("09:30", "10:30", duration=60)]
        # 10:00-10:30 booked: the 60-minute 09:30 slot overlaps, the 30-minute one does not
        slots = generate_slots(LAWYER, MONDAY, rules, appointments=[_appointment("10:00")], dedupe=True)
        by_time = {s.time: s for s in slots}
        assert by_time["09:30"].available is False
        assert by_time["09:30"].reason == REASON_BOOKED

    def test_results_sorted_by_time(self):
        rules = [_rule("14:00", "15:00"), _rule("09:00", "10:00")]
        slots = generate_slots(LAWYER, MONDAY, rules)
        assert _times(slots) == sorted(_times(slots))


class TestMalformedInput:
    def test_rule_with_missing_start_is_skipped(self):
        rules = [_rule(start=None), _rule("14:00", "15:00")]
        assert _times(generate_slots(LAWYER, MONDAY, rules)) == ["14:00", "14:30"]

    def test_rule_with_garbage_time_is_skipped(self):
        rules = [_rule(end="not-a-time"), _rule("14:00", "15:00")]
        assert _times(generate_slots(LAWYER, MONDAY, rules)) == ["14:00", "14:30"]

    def test_rule_with_start_after_end_is_skipped(self):
        assert generate_slots(LAWYER, MONDAY, [_rule("11:00", "10:00")]) == []

    def test_rule_with_zero_duration_is_skipped(self):
        assert generate_slots(LAWYER, MONDAY, [_rule(duration=0)]) == []

    def test_seconds_and_time_objects_accepted(self):
        rules = [_rule(start="09:00:00", end=time(10, 0))]
        assert _times(generate_slots(LAWYER, MONDAY, rules)) == ["09:00", "09:30"]

    def test_iso_timestamp_rule_times_normalised(self):
        rules = [_rule(start="2026-03-02T09:00:00", end="2026-03-02T10:00:00")]
        assert _times(generate_slots(LAWYER, MONDAY, rules)) == ["09:00", "09:30"]

    def test_iso_rule_from_another_date_still_sees_bookings(self):
        rules = [_rule(start="2026-01-05T09:00:00", end="2026-01-05T12:00:00")]
        slots = generate_slots(LAWYER, MONDAY, rules, appointments=[_appointment("10:00")])
        by_time = {s.time: s for s in slots}
        assert _times(slots) == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"]
        assert by_time["10:00"].available is False
        assert by_time["10:00"].reason == REASON_BOOKED

    def test_bad_appointment_duration_falls_back_to_default(self):
        slots = generate_slots(LAWYER, MONDAY, [_rule()], appointments=[_appointment("09:00", duration="abc")])
        by_time = {s.time: s for s in slots}
        assert by_time["09:00"].available is False
        assert by_time["09:30"].available is True


class TestConflicts:
    def test_overlapping_slot_is_booked(self):
        """10:00-10:30 booked → a 09:45-10:15 slot is unavailable, 10:30 stays open."""
        rules = [_rule("09:45", "11:00", duration=30, buffer=15)]
        slots = generate_slots(LAWYER, MONDAY, rules, appointments=[_appointment("10:00")])
        by_time = {s.time: s for s in slots}
        assert by_time["09:45"].available is False
        assert by_time["09:45"].reason == REASON_BOOKED
        assert by_time["10:30"].available is True

    def test_touching_boundaries_do_not_overlap(self):
        slots = generate_slots(LAWYER, MONDAY, [_rule()], appointments=[_appointment("10:00")])
        assert all(s.available for s in slots)

    def test_cancelled_appointments_ignored(self):
        slots = generate_slots(
            LAWYER, MONDAY, [_rule()], appointments=[_appointment("09:00", status="cancelled")]
        )
        assert all(s.available for s in slots)

    def test_other_days_and_lawyers_ignored(self):
        appointments = [
            _appointment("09:00", day=date(2026, 3, 9)),
            _appointment("09:00", lawyer="lawyer-2"),
        ]
        slots = generate_slots(LAWYER, MONDAY, [_rule()], appointments=appointments)
        assert all(s.available for s in slots)

    def test_iso_appointment_time_matches_hhmm(self):
        slots = generate_slots(
            LAWYER, MONDAY, [_rule()], appointments=[_appointment("2026-03-02T09:30:00")]
        )
        by_time = {s.time: s for s in slots}
        assert by_time["09:00"].available is True
        assert by_time["09:30"].available is False

    def test_explicit_end_time_wins_over_duration(self):
        apt = _appointment("09:00", duration=30)
        apt["end_time"] = "10:00"
        slots = generate_slots(LAWYER, MONDAY, [_rule()], appointments=[apt])
        assert not any(s.available for s in slots)


class TestDailyCap:
    def test_cap_reached_blocks_every_slot(self):
        rules = [_rule(end="12:00", max_per_day=2)]
        appointments = [_appointment("09:00"), _appointment("11:30")]
        slots = generate_slots(LAWYER, MONDAY, rules, appointments=appointments)
        assert len(slots) == 6
        assert all(not s.available for s in slots)
        assert all(s.reason == REASON_DAILY_LIMIT for s in slots)

    def test_cap_not_reached(self):
        rules = [_rule(end="12:00", max_per_day=3)]
        appointments = [_appointment("09:00"), _appointment("11:30")]
        slots = generate_slots(LAWYER, MONDAY, rules, appointments=appointments)
        assert sum(1 for s in slots if s.available) == 4

    def test_tightest_cap_across_rules_applies(self):
        rules = [_rule("09:00", "10:00", max_per_day=5), _rule("14:00", "15:00", max_per_day=1)]
        slots = generate_slots(LAWYER, MONDAY, rules, appointments=[_appointment("16:00")])
        assert all(s.reason == REASON_DAILY_LIMIT for s in slots)

    def test_cancelled_do_not_count_toward_cap(self):
        rules = [_rule(max_per_day=1)]
        slots = generate_slots(
            LAWYER, MONDAY, rules, appointments=[_appointment("15:00", status="cancelled")]
        )
        assert all(s.available for s in slots)

    def test_appointment_without_time_still_counts_toward_cap(self):
        rules = [_rule(max_per_day=1)]
        slots = generate_slots(LAWYER, MONDAY, rules, appointments=[_appointment(None)])
        assert len(slots) == 2
        assert all(s.reason == REASON_DAILY_LIMIT for s in slots)


class TestBlockedDates:
    def test_blocked_exception_short_circuits(self):
        exceptions = [{"owner_id": LAWYER, "date": "2026-03-02", "is_blocked": True}]
        slots = generate_slots(LAWYER, MONDAY, [_rule(end="12:00"), _rule("14:00", "17:00")], exceptions=exceptions)
        assert slots == [TimeSlot(time="blocked", available=False, reason=REASON_BLOCKED)]

    def test_firm_holiday_blocks(self):
        holidays = [{"firm_id": FIRM, "date": MONDAY, "name": "Holi"}]
        slots = generate_slots(LAWYER, MONDAY, [_rule()], holidays=holidays, firm_id=FIRM)
        assert len(slots) == 1
        assert slots[0].reason == REASON_BLOCKED

    def test_other_firms_holiday_ignored(self):
        holidays = [{"firm_id": "firm-2", "date": MONDAY, "name": "Holi"}]
        slots = generate_slots(LAWYER, MONDAY, [_rule()], holidays=holidays, firm_id=FIRM)
        assert _times(slots) == ["09:00", "09:30"]

    def test_unblocked_exception_ignored(self):
        exceptions = [{"owner_id": LAWYER, "date": MONDAY, "is_blocked": False}]
        assert len(generate_slots(LAWYER, MONDAY, [_rule()], exceptions=exceptions)) == 2

    def test_no_rules_beats_blocked(self):
        exceptions = [{"owner_id": LAWYER, "date": MONDAY, "is_blocked": True}]
        assert generate_slots(LAWYER, date(2026, 3, 3), [_rule()], exceptions=exceptions) == []


class TestPurity:
    def test_same_inputs_same_output(self):
        rules = [_rule(end="12:00", max_per_day=4)]
        appointments = [_appointment("10:00")]
        first = generate_slots(LAWYER, MONDAY, rules, appointments=appointments)
        second = generate_slots(LAWYER, MONDAY, rules, appointments=appointments)
        assert first == second

    def test_inputs_not_mutated(self):
        rules = [_rule()]
        snapshot = dict(rules[0])
        generate_slots(LAWYER, MONDAY, rules, appointments=[_appointment("09:00")])
        assert rules[0] == snapshot

    def test_slot_serialises_for_the_api(self):
        slot = TimeSlot(time="09:00", available=False, reason=REASON_BOOKED, duration_minutes=30)
        assert slot.model_dump() == {
            "time": "09:00", "available": False, "reason": REASON_BOOKED, "duration_minutes": 30,
        }


class TestCheckSlotConflict:
    def test_free_slot(self):
        assert check_slot_conflict(LAWYER, MONDAY, "09:00", 30, [_rule()]) is None

    def test_overlap(self):
        reason = check_slot_conflict(
            LAWYER, MONDAY, "09:45", 30, [_rule()], appointments=[_appointment("10:00")]
        )
        assert reason == REASON_BOOKED

    def test_cap(self):
        reason = check_slot_conflict(
            LAWYER, MONDAY, "09:00", 30, [_rule(max_per_day=1)], appointments=[_appointment("11:00")]
        )
        assert reason == REASON_DAILY_LIMIT

    def test_cap_counts_appointment_without_time(self):
        reason = check_slot_conflict(
            LAWYER, MONDAY, "09:00", 30, [_rule(max_per_day=1)], appointments=[_appointment(None)]
        )
        assert reason == REASON_DAILY_LIMIT

    def test_iso_request_time_from_another_date(self):
        reason = check_slot_conflict(
            LAWYER, MONDAY, "2026-01-05T10:00:00", 30, [_rule()], appointments=[_appointment("10:00")]
        )
        assert reason == REASON_BOOKED

    @pytest.mark.parametrize("source", ["exceptions", "holidays"])
    def test_blocked(self, source):
        row = {"owner_id": LAWYER, "firm_id": FIRM, "date": MONDAY, "is_blocked": True}
        reason = check_slot_conflict(LAWYER, MONDAY, "09:00", 30, [_rule()], **{source: [row]})
        assert reason == REASON_BLOCKED
