from datetime import date

import pytest

from clinic.core.timeparse import InvalidTimeError, SlotTime, day_name, parse_24h, parse_time


@pytest.mark.parametrize(
    "text, expected",
    [
        ("9:00 AM", SlotTime(9, 0)),
        ("09:00", SlotTime(9, 0)),
        ("2:30 PM", SlotTime(14, 30)),
        ("2:30pm", SlotTime(14, 30)),
        ("02:30 p.m.", SlotTime(14, 30)),
        ("12:00 AM", SlotTime(0, 0)),
        ("12:15 PM", SlotTime(12, 15)),
        ("23:45", SlotTime(23, 45)),
    ],
)
def test_parse_time_accepts_12_and_24_hour_forms(text, expected):
    assert parse_time(text) == expected


@pytest.mark.parametrize("text", ["", "  ", "25:00", "9:60", "13:00 PM", "0:30 AM", "noon", "9.30"])
def test_parse_time_rejects_malformed_values(text):
    with pytest.raises(InvalidTimeError):
        parse_time(text)


def test_parse_24h_does_not_accept_meridiem():
    with pytest.raises(InvalidTimeError):
        parse_24h("9:00 AM")


def test_slot_time_formats():
    assert SlotTime(9, 0).to_12h() == "9:00 AM"
    assert SlotTime(0, 5).to_12h() == "12:05 AM"
    assert SlotTime(13, 30).to_12h() == "1:30 PM"
    assert SlotTime(7, 5).to_24h() == "07:05"


def test_plus_minutes_stays_within_a_day():
    assert SlotTime(9, 45).plus_minutes(30) == SlotTime(10, 15)
    with pytest.raises(InvalidTimeError):
        SlotTime(23, 50).plus_minutes(15)


def test_day_name():
    assert day_name(date(2024, 6, 3)) == "Monday"
    assert day_name(date(2024, 6, 9)) == "Sunday"
