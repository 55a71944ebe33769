from datetime import date, datetime

import pytest

from backend.booking.errors import InvalidSlotError
from backend.booking.slots import (
    generate_slot_labels,
    label_to_minutes,
    minutes_to_label,
    normalize_label,
    parse_slot_date,
    slot_start,
)


def test_generate_slot_labels_includes_last_slot_that_ends_at_close() -> None:
    assert generate_slot_labels('10:00', '12:00', 60) == ['10:00', '11:00']


def test_generate_slot_labels_drops_trailing_partial_slot() -> None:
    assert generate_slot_labels('09:00', '10:45', 30) == ['09:00', '09:30', '10:00']


def test_generate_slot_labels_returns_empty_when_nothing_fits() -> None:
    assert generate_slot_labels('09:00', '09:20', 30) == []


def test_generate_slot_labels_are_zero_padded_and_ordered() -> None:
    labels = generate_slot_labels('07:30', '10:00', 45)

    assert labels == ['07:30', '08:15', '09:00']
    assert labels == sorted(labels)


def test_generate_slot_labels_rejects_non_positive_duration() -> None:
    with pytest.raises(InvalidSlotError):
        generate_slot_labels('09:00', '17:00', 0)


@pytest.mark.parametrize(
    ('raw', 'expected'),
    [
        ('9:00', '09:00'),
        (' 09:30 ', '09:30'),
        ('23:59', '23:59'),
    ],
)
def test_normalize_label_accepts_short_hours(raw: str, expected: str) -> None:
    assert normalize_label(raw) == expected


@pytest.mark.parametrize('raw', ['24:00', '09:60', '0900', 'nine', '', '9:5'])
def test_normalize_label_rejects_malformed_labels(raw: str) -> None:
    with pytest.raises(InvalidSlotError):
        normalize_label(raw)


def test_minutes_round_trip_through_labels() -> None:
    assert label_to_minutes('13:45') == 825
    assert minutes_to_label(825) == '13:45'


def test_parse_slot_date_accepts_iso_strings_and_dates() -> None:
    assert parse_slot_date('2026-03-02') == date(2026, 3, 2)
    assert parse_slot_date(date(2026, 3, 2)) == date(2026, 3, 2)
    assert parse_slot_date(datetime(2026, 3, 2, 8, 0)) == date(2026, 3, 2)


def test_parse_slot_date_rejects_garbage() -> None:
    with pytest.raises(InvalidSlotError) as exception_info:
        parse_slot_date('02/03/2026')

    assert 'Expected YYYY-MM-DD' in exception_info.value.message


def test_slot_start_combines_date_and_label() -> None:
    assert slot_start(date(2026, 3, 2), '14:30') == datetime(2026, 3, 2, 14, 30)
