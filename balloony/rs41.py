"""
Vaisala RS41 serial number decoding.

RS41 serials encode their manufacture date in the first four characters:
a year letter, a two digit ISO week and an ISO weekday digit (1 = Monday).
For example T0510000 was built on the Monday of week 5, 2021.
"""

from datetime import date, timedelta

from balloony.errors import SerialDecodeError, SerialTooShortError, UnknownYearCodeError

# First serial character -> manufacture year. I, O and Q are never used.
RS41_YEAR_CODES = {
    'A': 2028,
    'B': 2029,
    'C': 2030,
    'D': 2031,
    'E': 2032,
    'F': 2033,
    'G': 2034,
    'J': 2013,
    'K': 2014,
    'L': 2015,
    'M': 2016,
    'N': 2017,
    'P': 2018,
    'R': 2019,
    'S': 2020,
    'T': 2021,
    'U': 2022,
    'V': 2023,
    'W': 2024,
    'X': 2025,
    'Y': 2026,
    'Z': 2027,
}


def iso_week_monday(week: int, year: int) -> date:
    """Monday of the given ISO week. January 4th is always in week 1."""
    jan4 = date(year, 1, 4)
    week_start = jan4 + timedelta(days=(week - 1) * 7)
    return week_start - timedelta(days=week_start.isoweekday() - 1)


def resolve_rs41_date(serial: str) -> date:
    """Decode the manufacture date from an RS41 serial."""
    if len(serial) < 4:
        raise SerialTooShortError(f'serial too short: {serial!r}')

    year = RS41_YEAR_CODES.get(serial[0])
    if year is None:
        raise UnknownYearCodeError(f'unknown year code {serial[0]!r} in {serial!r}')

    week_text, day_text = serial[1:3], serial[3]
    if not (week_text.isdigit() and day_text.isdigit()):
        raise SerialDecodeError(f'week/day digits expected in {serial!r}')

    week = int(week_text)
    days = int(day_text) - 1  # 0: Monday, 6: Sunday
    return iso_week_monday(week, year) + timedelta(days=days)
