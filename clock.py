from datetime import datetime
from typing import Optional

import pytz

from config import APP_TIMEZONE

def get_tz():
    return pytz.timezone(APP_TIMEZONE)

def utcnow() -> datetime:
    return datetime.utcnow()

def to_local(dt: datetime) -> datetime:
    """created_at disimpan sebagai UTC naive."""
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(get_tz())

def local_day_start_utc(now: Optional[datetime] = None) -> datetime:
    """Jam 00:00 hari ini di zona waktu toko, dikembalikan sebagai UTC naive."""
    local_now = to_local(now or utcnow())
    local_midnight = get_tz().localize(datetime(local_now.year, local_now.month, local_now.day))
    return local_midnight.astimezone(pytz.utc).replace(tzinfo=None)

def format_datetime_tz(dt: Optional[datetime], format_str: str = "%d-%m-%Y %H:%M:%S") -> str:
    if dt is None:
        return "-"
    return to_local(dt).strftime(format_str)
