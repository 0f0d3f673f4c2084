import calendar
from datetime import datetime, date

from config import settings


def parse_date_key(value: str) -> date:
    """Parse a DateKey (``MM-DD-YYYY``) into a calendar date.

    Raises ValueError when the text is not in the fixed format.
    """
    return datetime.strptime((value or "").strip(), settings.DATE_KEY_FORMAT).date()


def format_date_key(d: date | datetime) -> str:
    return d.strftime(settings.DATE_KEY_FORMAT)


def normalize_date_key(value: str) -> str:
    """Round-trip a DateKey so that equal dates compare equal as strings."""
    return format_date_key(parse_date_key(value))


def is_date_key(value: object) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parse_date_key(value)
    except ValueError:
        return False
    return True


def chart_label(d: date) -> str:
    return d.strftime(settings.CHART_LABEL_FORMAT)


def sort_date_keys(keys, reverse: bool = False) -> list[str]:
    """Sort DateKeys chronologically; plain string order is not chronological for MM-DD-YYYY."""
    return sorted(keys, key=parse_date_key, reverse=reverse)


def shift_months(moment: datetime, delta_months: int) -> datetime:
    """Move ``moment`` by whole calendar months, clipping the day to the target month's length."""
    month_index = (moment.year * 12 + (moment.month - 1)) + delta_months
    out_year = month_index // 12
    out_month = (month_index % 12) + 1
    day = min(moment.day, calendar.monthrange(out_year, out_month)[1])
    return moment.replace(year=out_year, month=out_month, day=day)

