"""Date and time helpers for reservations (local wall-clock times per instance timezone)"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

WEEKDAY_KEYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

DAY_NAMES_PL = ["poniedziałek", "wtorek", "środa", "czwartek", "piątek", "sobota", "niedziela"]
MONTH_NAMES_PL = ["sty", "lut", "mar", "kwi", "maj", "cze", "lip", "sie", "wrz", "paź", "lis", "gru"]
MONTH_NAMES_FULL_PL = [
    "stycznia",
    "lutego",
    "marca",
    "kwietnia",
    "maja",
    "czerwca",
    "lipca",
    "sierpnia",
    "września",
    "października",
    "listopada",
    "grudnia",
]


def time_to_minutes(value: str) -> int:
    """'HH:MM' or 'HH:MM:SS' -> minutes from midnight"""
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    minutes %= 24 * 60
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def calculate_end_time(start_time: str, duration_minutes: int) -> str:
    """End time wrapped past midnight"""
    return minutes_to_time(time_to_minutes(start_time) + duration_minutes)


def parse_time(value: str) -> time:
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


def to_datetime(day: date, value: str) -> datetime:
    return datetime.combine(day, parse_time(value))


def interval_of(start_date: date, start_time: str, end_date: Optional[date], end_time: str) -> tuple:
    """
    Half-open [start, end) interval in local wall-clock time.
    A same-day end at or before the start is read as the next day.
    """
    start = to_datetime(start_date, start_time)
    end = to_datetime(end_date or start_date, end_time)
    if end <= start:
        end += timedelta(days=1)
    return start, end


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def utcnow() -> datetime:
    """Naive UTC now, matching the naive UTC timestamps stored in the database"""
    return datetime.utcnow()


def get_zone(tz_name: Optional[str]) -> ZoneInfo:
    return ZoneInfo(tz_name or "Europe/Warsaw")


def to_local(now_utc: datetime, tz_name: Optional[str]) -> datetime:
    """Naive-UTC or aware datetime -> aware datetime in the instance timezone"""
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=timezone.utc)
    return now_utc.astimezone(get_zone(tz_name))


def local_to_utc(day: date, value: str, tz_name: Optional[str]) -> datetime:
    """Local wall-clock date + time -> naive UTC datetime"""
    local = to_datetime(day, value).replace(tzinfo=get_zone(tz_name))
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def minutes_until_start(now_utc: datetime, day: date, start_time: str, tz_name: Optional[str]) -> float:
    start_utc = local_to_utc(day, start_time, tz_name)
    if now_utc.tzinfo is not None:
        now_utc = now_utc.astimezone(timezone.utc).replace(tzinfo=None)
    return (start_utc - now_utc).total_seconds() / 60


def is_within_window(now_minutes: int, target_minutes: int, window_minutes: int = 5) -> bool:
    return abs(now_minutes - target_minutes) <= window_minutes


def is_in_backoff(last_attempt_at: Optional[datetime], now_utc: datetime, backoff_minutes: int) -> bool:
    if not last_attempt_at:
        return False
    return last_attempt_at > now_utc - timedelta(minutes=backoff_minutes)


def format_date_pl(day: date) -> dict:
    """Polish day and month names for SMS texts"""
    return {
        "day_name": DAY_NAMES_PL[day.weekday()],
        "day_num": day.day,
        "month_name": MONTH_NAMES_PL[day.month - 1],
        "month_name_full": MONTH_NAMES_FULL_PL[day.month - 1],
    }


def daterange(start: date, end: date):
    """Inclusive range of days"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
