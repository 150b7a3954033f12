"""
Date and Time utilities

Parsing and formatting of XMLTV timestamps. All listings times are handled as
timezone-aware UTC datetimes internally.
"""
from datetime import datetime, timezone, timedelta
import logging


logger = logging.getLogger(__name__)

XMLTV_TIME_FORMAT = '%Y%m%d%H%M%S'


class DateFormatError(ValueError):
    """Raised when date format is invalid"""
    pass


def parse_xmltv_time(time_str: str) -> datetime:
    """
    Convert XMLTV time format to a UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600'

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        DateFormatError: If the time string format is invalid
    """
    try:
        # Split time and timezone
        parts = time_str.strip().split()
        # YYYYMMDDHHMMSS, trailing fields may be omitted (YYYYMMDDHHMM)
        time_part = parts[0][:14].ljust(14, '0')
        tz_part = parts[1] if len(parts) > 1 else '+0000'

        dt = datetime.strptime(time_part, XMLTV_TIME_FORMAT)

        # Parse timezone offset (±HHMM)
        if tz_part[0] not in '+-' or len(tz_part) != 5:
            raise ValueError(f"bad offset {tz_part}")
        tz_sign = 1 if tz_part[0] == '+' else -1
        tz_hours = int(tz_part[1:3])
        tz_mins = int(tz_part[3:5])
        tz_offset_minutes = tz_sign * (tz_hours * 60 + tz_mins)
    except (ValueError, IndexError, AttributeError) as e:
        raise DateFormatError(f"Invalid XMLTV time format: '{time_str}'") from e

    # Convert to UTC
    dt_utc = dt - timedelta(minutes=tz_offset_minutes)

    return dt_utc.replace(tzinfo=timezone.utc)


def format_xmltv_time(value: datetime) -> str:
    """
    Render a datetime as an XMLTV UTC timestamp

    Naive datetimes are assumed to already be UTC.

    Returns:
        String like '20260129000000 +0000'
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return f"{value.astimezone(timezone.utc).strftime(XMLTV_TIME_FORMAT)} +0000"
