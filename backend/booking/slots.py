"""Time-slot label helpers.

A slot is identified by the ``HH:MM`` label of its start time, zero padded and
on the 24-hour clock. Labels sort chronologically as plain strings.
"""

import re
from datetime import date, datetime, time

from backend.booking.errors import InvalidSlotError

MINUTES_PER_DAY = 24 * 60

_LABEL_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')


def is_valid_label(label: str) -> bool:
    return bool(_LABEL_PATTERN.match(label or ''))


def label_to_minutes(label: str) -> int:
    match = _LABEL_PATTERN.match(label or '')
    if not match:
        raise InvalidSlotError(f'Invalid time slot "{label}". Expected HH:MM (24-hour).')
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_label(minutes: int) -> str:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f'{minutes} minutes is outside a single day.')
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def label_to_time(label: str) -> time:
    minutes = label_to_minutes(label)
    return time(minutes // 60, minutes % 60)


def normalize_label(label: str) -> str:
    """Accept ``H:MM`` as well as ``HH:MM`` and return the canonical form."""
    candidate = (label or '').strip()
    if len(candidate) == 4 and candidate[1] == ':':
        candidate = f'0{candidate}'
    return minutes_to_label(label_to_minutes(candidate))


def generate_slot_labels(open_time: str, close_time: str, duration_minutes: int) -> list[str]:
    """Labels for every slot that starts at ``open_time`` and fits before ``close_time``.

    A slot is only offered when ``start + duration <= close``; a close time
    that does not line up with the step drops the trailing partial slot.
    """
    if duration_minutes <= 0:
        raise InvalidSlotError('Slot duration must be a positive number of minutes.')

    start = label_to_minutes(open_time)
    close = label_to_minutes(close_time)

    labels: list[str] = []
    while start + duration_minutes <= close:
        labels.append(minutes_to_label(start))
        start += duration_minutes

    return labels


def parse_slot_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise InvalidSlotError(f'Invalid date "{value}". Expected YYYY-MM-DD.') from exc


def slot_start(slot_date: date, label: str) -> datetime:
    return datetime.combine(slot_date, label_to_time(label))
