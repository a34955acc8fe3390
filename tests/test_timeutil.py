from datetime import datetime, time, timedelta, timezone

import pytest

from chatlog.timeutil import TimeGranularity, parse_time, time_of, time_range_of

END_OF_DAY = time(23, 59, 59, 999999)


def wall(dt):
    return dt.replace(tzinfo=None)


LOCAL_CASES = [
    ("2020Q1", datetime(2020, 1, 1)),
    ("2020Q2", datetime(2020, 4, 1)),
    ("2020Q3", datetime(2020, 7, 1)),
    ("2020Q4", datetime(2020, 10, 1)),
    ("2020", datetime(2020, 1, 1)),
    ("1970", datetime(1970, 1, 1)),
    ("9999", datetime(9999, 1, 1)),
    ("202001", datetime(2020, 1, 1)),
    ("202012", datetime(2020, 12, 1)),
    ("2020-01", datetime(2020, 1, 1)),
    ("2020-12", datetime(2020, 12, 1)),
    ("20200101", datetime(2020, 1, 1)),
    ("20201231", datetime(2020, 12, 31)),
    ("2020-01-01", datetime(2020, 1, 1)),
    ("2020-12-31", datetime(2020, 12, 31)),
    ("20200229", datetime(2020, 2, 29)),
    ("20200101/12:34", datetime(2020, 1, 1, 12, 34)),
    ("2020-01-01/12:34", datetime(2020, 1, 1, 12, 34)),
    ("20200101120000", datetime(2020, 1, 1, 12, 0, 0)),
    ("20201231235959", datetime(2020, 12, 31, 23, 59, 59)),
    ("200601021504", datetime(2006, 1, 2, 15, 4)),
]


@pytest.mark.parametrize("text,expected", LOCAL_CASES)
def test_time_of_local_values(text, expected):
    result = time_of(text)
    assert wall(result) == expected
    assert result.utcoffset() is not None


@pytest.mark.parametrize(
    "text,expected",
    [
        ("1577836800", datetime(2020, 1, 1, tzinfo=timezone.utc)),
        ("1609459199", datetime(2020, 12, 31, 23, 59, 59, tzinfo=timezone.utc)),
        ("2020-01-01T12:00:00Z", datetime(2020, 1, 1, 12, tzinfo=timezone.utc)),
        (
            "2020-01-01T12:00:00+08:00",
            datetime(2020, 1, 1, 12, tzinfo=timezone(timedelta(hours=8))),
        ),
        ("2020-01-01T12:00Z", datetime(2020, 1, 1, 12, tzinfo=timezone.utc)),
    ],
)
def test_time_of_instants(text, expected):
    assert time_of(text) == expected


def test_time_of_all_is_zero_time():
    assert time_of("all") == datetime(1, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "text",
    [
        "", "   ", "invalid-ago", "-1d-ago",
        "2020Q5", "1969Q1", "10000Q1",
        "1969", "10000", "202",
        "202013", "2020-13", "2020-00", "196912", "1969-12",
        "20190229", "20200230", "2020-02-30", "20200000", "20200132",
        "19691231", "1969-12-31",
        "20200101/24:00", "20200101/12:60", "20200101/12:34:56",
        "20200101/12-34", "19691231/12:34",
        "20200101240000", "20200101126000", "20200101120060",
        "2020010112000", "202001011200000", "19691231235959",
        "999999999", "253402300800", "abc",
        "2020-01-01T12:00:00", "2020-01-01 12:00:00Z",
        "99999", "2020/01/01", "01/01/2020", "2020-1-1", "20201-01-01",
        "0h-ago", "1x-ago",
    ],
)
def test_time_of_invalid(text):
    with pytest.raises(ValueError):
        time_of(text)


@pytest.mark.parametrize(
    "text",
    [
        "now", "today", "yesterday", "this-week", "last-week", "this-month",
        "last-month", "this-year", "last-year", "1h-ago", "24h-ago", "1d-ago",
        "7d-ago", "1w-ago", "1m-ago", "1y-ago", "0d-ago",
    ],
)
def test_relative_times_are_not_in_future(text):
    assert time_of(text) <= datetime.now(timezone.utc) + timedelta(seconds=1)


def test_today_is_local_midnight():
    today = time_of("today")
    assert today.time() == time(0, 0)
    assert today.date() == datetime.now().date()


def test_zero_days_ago_is_today():
    assert time_of("0d-ago") == time_of("today")


def test_yesterday_is_day_before_today():
    assert time_of("today").date() - time_of("yesterday").date() == timedelta(days=1)


def test_this_week_starts_on_monday():
    monday = time_of("this-week")
    assert monday.weekday() == 0
    assert monday.time() == time(0, 0)
    assert (time_of("this-week").date() - time_of("last-week").date()).days == 7


def test_month_and_year_starts():
    this_month = time_of("this-month")
    last_month = time_of("last-month")
    assert this_month.day == 1 and last_month.day == 1
    assert (this_month.year * 12 + this_month.month) - (last_month.year * 12 + last_month.month) == 1
    this_year = time_of("this-year")
    assert (this_year.month, this_year.day) == (1, 1)
    assert time_of("last-year").year == this_year.year - 1


def test_hours_ago_is_absolute():
    result = time_of("1h-ago")
    delta = datetime.now(timezone.utc) - result
    assert timedelta(minutes=59) < delta < timedelta(minutes=61)


@pytest.mark.parametrize(
    "text,granularity",
    [
        ("2020", TimeGranularity.YEAR),
        ("2020Q1", TimeGranularity.QUARTER),
        ("202001", TimeGranularity.MONTH),
        ("20200101", TimeGranularity.DAY),
        ("20200101/12:34", TimeGranularity.MINUTE),
        ("200601021504", TimeGranularity.MINUTE),
        ("20200101120000", TimeGranularity.SECOND),
        ("1577836800", TimeGranularity.SECOND),
        ("2020-01-01T12:00:00Z", TimeGranularity.SECOND),
        ("now", TimeGranularity.SECOND),
        ("today", TimeGranularity.DAY),
        ("this-month", TimeGranularity.MONTH),
        ("all", TimeGranularity.YEAR),
        ("5h-ago", TimeGranularity.HOUR),
        ("90m-ago", TimeGranularity.MONTH),
        ("2w-ago", TimeGranularity.DAY),
        ("1y-ago", TimeGranularity.YEAR),
        ("30s-ago", TimeGranularity.SECOND),
        ("1h30m-ago", TimeGranularity.HOUR),
        ("48h0m-ago", TimeGranularity.DAY),
    ],
)
def test_parse_time_granularity(text, granularity):
    assert parse_time(text)[1] == granularity


def test_negative_duration_ago_lies_in_future():
    moment, granularity = parse_time("-1h-ago")
    assert granularity == TimeGranularity.SECOND
    assert moment > datetime.now(timezone.utc) + timedelta(minutes=59)


def test_edge_cases():
    for text in (
        "99999999999999999999999999999999999999",
        "a" * 10000,
        "!@#$%^&*()",
        "2020-01-01' OR '1'='1",
    ):
        with pytest.raises(ValueError):
            time_of(text)


def test_timezones():
    utc_time = time_of("2020-01-01T12:00:00Z")
    est_time = time_of("2020-01-01T12:00:00-05:00")
    assert est_time.astimezone(timezone.utc).hour - utc_time.astimezone(timezone.utc).hour == 5


def test_leap_years():
    leap = time_of("20200229")
    assert (leap.year, leap.month, leap.day) == (2020, 2, 29)
    assert time_of("20000229").day == 29
    with pytest.raises(ValueError):
        time_of("20190229")
    with pytest.raises(ValueError):
        time_of("21000229")


@pytest.mark.parametrize("text", ["all", "ALL"])
def test_range_all(text):
    start, end = time_range_of(text)
    assert start == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert end == datetime(9999, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)


RANGE_CASES = [
    ("2020-01-01~2020-01-31", datetime(2020, 1, 1), datetime(2020, 1, 31, 23, 59, 59, 999999)),
    ("2020-01-01,2020-01-31", datetime(2020, 1, 1), datetime(2020, 1, 31, 23, 59, 59, 999999)),
    ("2020-01-01 to 2020-01-31", datetime(2020, 1, 1), datetime(2020, 1, 31, 23, 59, 59, 999999)),
    ("20200101~20200131", datetime(2020, 1, 1), datetime(2020, 1, 31, 23, 59, 59, 999999)),
    ("2020-01-31~2020-01-01", datetime(2020, 1, 1), datetime(2020, 1, 31, 23, 59, 59, 999999)),
    ("2020-01-01", datetime(2020, 1, 1), datetime(2020, 1, 1, 23, 59, 59, 999999)),
    ("20200101", datetime(2020, 1, 1), datetime(2020, 1, 1, 23, 59, 59, 999999)),
    ("2020-01", datetime(2020, 1, 1), datetime(2020, 1, 31, 23, 59, 59, 999999)),
    ("202001", datetime(2020, 1, 1), datetime(2020, 1, 31, 23, 59, 59, 999999)),
    ("2020-02", datetime(2020, 2, 1), datetime(2020, 2, 29, 23, 59, 59, 999999)),
    ("2020Q1", datetime(2020, 1, 1), datetime(2020, 3, 31, 23, 59, 59, 999999)),
    ("2020Q2", datetime(2020, 4, 1), datetime(2020, 6, 30, 23, 59, 59, 999999)),
    ("2020", datetime(2020, 1, 1), datetime(2020, 12, 31, 23, 59, 59, 999999)),
    ("2020-01-01/12:34", datetime(2020, 1, 1), datetime(2020, 1, 1, 23, 59, 59, 999999)),
    ("20200101120000", datetime(2020, 1, 1), datetime(2020, 1, 1, 23, 59, 59, 999999)),
    ("2020-02-29", datetime(2020, 2, 29), datetime(2020, 2, 29, 23, 59, 59, 999999)),
    ("2020-01-01/10:00~2020-01-02", datetime(2020, 1, 1, 10), datetime(2020, 1, 2, 23, 59, 59, 999999)),
    ("2020-01-02~2020-01-01/10:00", datetime(2020, 1, 1, 10), datetime(2020, 1, 2, 23, 59, 59, 999999)),
]


@pytest.mark.parametrize("text,start,end", RANGE_CASES)
def test_range_local_values(text, start, end):
    got_start, got_end = time_range_of(text)
    assert wall(got_start) == start
    assert wall(got_end) == end


def test_range_rfc3339_keeps_zone():
    start, end = time_range_of("2020-01-01T12:00:00Z")
    assert start == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert end == datetime(2020, 1, 1, 23, 59, 59, 999999, tzinfo=timezone.utc)


def test_range_timestamp_covers_its_local_day():
    instant = datetime(2020, 1, 1, tzinfo=timezone.utc)
    start, end = time_range_of("1577836800")
    assert start <= instant <= end
    assert start.time() == time(0, 0)
    assert end.time() == END_OF_DAY
    assert start.date() == end.date()


@pytest.mark.parametrize(
    "text",
    ["last-1d", "last-7d", "last-30d", "last-1w", "last-4w", "last-1m", "last-3m", "last-1y"],
)
def test_range_last_n(text):
    start, end = time_range_of(text)
    assert start < end
    assert start.time() == time(0, 0)
    assert end.time() == END_OF_DAY
    assert end.date() == datetime.now().date()


def test_range_last_week_in_days():
    start, _ = time_range_of("last-1w")
    assert (datetime.now().date() - start.date()).days == 7


@pytest.mark.parametrize(
    "text",
    ["today", "yesterday", "this-week", "last-week", "this-month", "last-month", "this-year", "last-year"],
)
def test_range_named_periods(text):
    start, end = time_range_of(text)
    assert start < end
    assert start.time() == time(0, 0)
    assert end.time() == END_OF_DAY


def test_range_this_month_ends_on_last_day():
    start, end = time_range_of("this-month")
    assert start.day == 1
    assert (end + timedelta(microseconds=1)).day == 1


@pytest.mark.parametrize(
    "text",
    [
        "", "   ", "last-0d", "last--1d", "last-1x",
        "2020-01-01~invalid", "invalid~2020-01-31", "2020-01-01~2020-02-30",
        "2020-01-01~", "~2020-01-31", "invalid", "2019-02-29", "2020-04-31",
    ],
)
def test_range_invalid(text):
    with pytest.raises(ValueError):
        time_range_of(text)