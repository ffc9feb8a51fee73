from datetime import date, datetime

from n2wash.shared.timeutils import (
    calculate_end_time,
    format_date_pl,
    interval_of,
    intervals_overlap,
    is_in_backoff,
    is_within_window,
    local_to_utc,
    minutes_until_start,
    time_to_minutes,
)


def test_time_to_minutes_accepts_seconds():
    assert time_to_minutes("09:30") == 570
    assert time_to_minutes("09:30:15") == 570


def test_end_time_wraps_past_midnight():
    assert calculate_end_time("23:30", 90) == "01:00"


def test_interval_ending_at_or_before_start_runs_into_next_day():
    start, end = interval_of(date(2025, 3, 10), "22:00", None, "02:00")
    assert start == datetime(2025, 3, 10, 22, 0)
    assert end == datetime(2025, 3, 11, 2, 0)


def test_multi_day_interval():
    start, end = interval_of(date(2025, 3, 10), "09:00", date(2025, 3, 12), "17:00")
    assert (end - start).days == 2


def test_touching_intervals_do_not_overlap():
    a = interval_of(date(2025, 3, 10), "10:00", None, "11:00")
    b = interval_of(date(2025, 3, 10), "11:00", None, "12:00")
    assert not intervals_overlap(*a, *b)
    c = interval_of(date(2025, 3, 10), "10:59", None, "11:30")
    assert intervals_overlap(*a, *c)


def test_local_to_utc_follows_daylight_saving():
    # Warsaw is UTC+1 in winter and UTC+2 in summer
    assert local_to_utc(date(2025, 1, 15), "10:00", "Europe/Warsaw") == datetime(2025, 1, 15, 9, 0)
    assert local_to_utc(date(2025, 7, 15), "10:00", "Europe/Warsaw") == datetime(2025, 7, 15, 8, 0)


def test_minutes_until_start_in_instance_timezone():
    now = datetime(2025, 7, 15, 7, 0)  # 09:00 in Warsaw
    assert minutes_until_start(now, date(2025, 7, 15), "10:00", "Europe/Warsaw") == 60


def test_window_and_backoff():
    assert is_within_window(19 * 60 + 4, 19 * 60)
    assert not is_within_window(19 * 60 + 6, 19 * 60)

    now = datetime(2025, 7, 15, 12, 0)
    assert not is_in_backoff(None, now, 15)
    assert is_in_backoff(datetime(2025, 7, 15, 11, 50), now, 15)
    assert not is_in_backoff(datetime(2025, 7, 15, 11, 40), now, 15)


def test_polish_date_parts():
    parts = format_date_pl(date(2025, 3, 10))
    assert parts == {"day_name": "poniedziałek", "day_num": 10, "month_name": "mar", "month_name_full": "marca"}
