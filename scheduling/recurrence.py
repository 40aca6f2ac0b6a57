import calendar
from datetime import MAXYEAR, date, timedelta

PATTERNS = ('weekly', 'biweekly', 'monthly')

_DAY_STEPS = {'weekly': 7, 'biweekly': 14}


def add_months(day: date, months: int) -> date:
    """
    Same day-of-month `months` later, clamped to the end of shorter months.
    Raises OverflowError past year 9999, like date arithmetic does.
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    if year > MAXYEAR:
        raise OverflowError('date value out of range')
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def generate_series(start_date: date, end_date: date, pattern: str = 'weekly'):
    """
    Yield the occurrence dates of a recurring series, starting with
    `start_date` and including `end_date`. Empty when start is after end.
    Monthly steps are taken from the start date so a 31st keeps coming back
    after a short month. The series ends early at the last representable date.
    """
    step = 0
    current = start_date
    while current <= end_date:
        yield current
        step += 1
        try:
            if pattern == 'monthly':
                current = add_months(start_date, step)
            else:
                current = start_date + timedelta(days=_DAY_STEPS.get(pattern, 7) * step)
        except OverflowError:
            return
