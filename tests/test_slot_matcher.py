from conftest import MONDAY, NEXT_MONDAY, make_slot

from clinic.core.timeparse import SlotTime
from clinic.services.slot_matcher import available_slots_for_date, find_bookable_slot, slots_overlap


def test_template_matches_on_its_weekday(db, doctor, monday_slot):
    assert find_bookable_slot(db, doctor.id, MONDAY, SlotTime(9, 0)).id == monday_slot.id


def test_template_does_not_match_other_weekdays(db, doctor, monday_slot):
    tuesday = MONDAY.replace(day=4)
    assert find_bookable_slot(db, doctor.id, tuesday, SlotTime(9, 0)) is None


def test_closed_override_hides_template_for_that_date_only(db, doctor, monday_slot):
    make_slot(db, doctor, on_date=MONDAY, is_available=False)

    assert find_bookable_slot(db, doctor.id, MONDAY, SlotTime(9, 0)) is None
    assert find_bookable_slot(db, doctor.id, NEXT_MONDAY, SlotTime(9, 0)).id == monday_slot.id


def test_open_override_without_template_is_bookable(db, doctor):
    override = make_slot(db, doctor, start_time="18:00", end_time="18:15", on_date=MONDAY)

    assert find_bookable_slot(db, doctor.id, MONDAY, SlotTime(18, 0)).id == override.id


def test_admin_only_slot_needs_staff(db, doctor):
    slot = make_slot(db, doctor, start_time="06:30", end_time="06:45", is_admin_only=True)

    assert find_bookable_slot(db, doctor.id, MONDAY, SlotTime(6, 30)) is None
    assert find_bookable_slot(db, doctor.id, MONDAY, SlotTime(6, 30), include_admin_only=True).id == slot.id


def test_available_slots_prefers_overrides_and_sorts(db, doctor):
    make_slot(db, doctor, start_time="10:00", end_time="10:15")
    make_slot(db, doctor, start_time="09:00", end_time="09:15")
    make_slot(db, doctor, start_time="10:00", end_time="10:15", on_date=MONDAY, is_available=False)

    slots = available_slots_for_date(db, doctor.id, MONDAY)

    assert [s.start_time for s in slots] == ["09:00"]
    assert [s.start_time for s in available_slots_for_date(db, doctor.id, NEXT_MONDAY)] == ["09:00", "10:00"]


def test_slots_overlap_treats_touching_ranges_as_free():
    assert not slots_overlap(SlotTime(9, 0), SlotTime(9, 15), SlotTime(9, 15), SlotTime(9, 30))
    assert slots_overlap(SlotTime(9, 0), SlotTime(9, 30), SlotTime(9, 15), SlotTime(9, 45))
