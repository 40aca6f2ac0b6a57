from datetime import date, datetime, time as dtime

from .errors import ValidationError

DEFAULT_DURATION = 60

_TIME_FORMATS = ('%H:%M', '%H:%M:%S')


def parse_time(value) -> dtime:
    """
    HH:MM or HH:MM:SS -> datetime.time. Hours and minutes may be unpadded,
    so "8:5" reads as 08:05. time objects pass through.
    """
    if isinstance(value, dtime):
        return value
    if isinstance(value, str):
        for fmt in _TIME_FORMATS:
            try:
                return datetime.strptime(value.strip(), fmt).time()
            except ValueError:
                continue
    raise ValidationError(f'Invalid time {value!r}, expected HH:MM')


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), '%Y-%m-%d').date()
        except ValueError:
            pass
    raise ValidationError(f'Invalid date {value!r}, expected YYYY-MM-DD')


def time_to_minutes(value) -> int:
    """Minutes since midnight for anything parse_time accepts (HH:MM, HH:MM:SS,
    unpadded "8:5", or a time object)."""
    t = parse_time(value)
    return t.hour * 60 + t.minute


def format_time(value) -> str:
    return parse_time(value).strftime('%H:%M')


def _minutes(value) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return time_to_minutes(value)


def overlaps(start_a, duration_a, start_b, duration_b) -> bool:
    """True if [a, a+da) and [b, b+db) intersect. Touching endpoints don't count."""
    a = _minutes(start_a)
    b = _minutes(start_b)
    a_end = a + (duration_a or DEFAULT_DURATION)
    b_end = b + (duration_b or DEFAULT_DURATION)
    return a < b_end and a_end > b
