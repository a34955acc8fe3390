"""Parsing of loose time expressions into points in time and time ranges.

Results are timezone-aware datetimes. Wall-clock forms such as ``20200101``
are interpreted in the local timezone; RFC 3339 strings keep their own offset.
"""

from __future__ import annotations

import calendar
import re
import time
from datetime import datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from enum import IntEnum

__all__ = ["TimeGranularity", "parse_time", "time_of", "time_range_of"]


class TimeGranularity(IntEnum):
    """How precisely a parsed time expression pins down a moment."""

    UNKNOWN = 0
    SECOND = 1
    MINUTE = 2
    HOUR = 3
    DAY = 4
    MONTH = 5
    QUARTER = 6
    YEAR = 7


_EPOCH = datetime(1970, 1, 1)


class _LocalTimezone(tzinfo):
    """The system's local timezone, with offsets looked up per instant."""

    @staticmethod
    def _fallback() -> timedelta:
        return timedelta(seconds=-time.timezone)

    def utcoffset(self, dt):
        if dt is None:
            return self._fallback()
        try:
            stamp = time.mktime(
                (dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second, 0, 0, -1)
            )
            return timedelta(seconds=time.localtime(stamp).tm_gmtoff)
        except (OverflowError, OSError, ValueError):
            return self._fallback()

    def dst(self, dt):
        return timedelta(0)

    def tzname(self, dt):
        return time.tzname[0]

    def fromutc(self, dt):
        naive = dt.replace(tzinfo=None)
        try:
            local = time.localtime((naive - _EPOCH) // timedelta(seconds=1))
            return datetime(*local[:6], naive.microsecond, tzinfo=self)
        except (OverflowError, OSError, ValueError):
            return (naive + self._fallback()).replace(tzinfo=self)

    def __repr__(self) -> str:
        return "LocalTimezone()"


_LOCAL = _LocalTimezone()
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_ALL_START = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ALL_END = datetime(9999, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)
_INT64_MAX = 2**63 - 1

_INT_RE = re.compile(r"[+-]?[0-9]+")
_QUARTER_RE = re.compile(r"(\d{4})Q([1-4])", re.ASCII)
_AGO_RE = re.compile(r"(\d+)([hdwmy])", re.ASCII)
_LAST_RE = re.compile(r"last-(\d+)([dwmy])", re.ASCII)
_CLOCK_RE = re.compile(r"\d{2}:\d{2}", re.ASCII)
_RFC3339_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})",
    re.ASCII,
)
_RFC3339_NO_SECONDS_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})()()(Z|[+-]\d{2}:\d{2})", re.ASCII
)
_DURATION_PART = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(f"(?:{_DURATION_PART})+", re.ASCII)
_DURATION_PART_RE = re.compile(_DURATION_PART, re.ASCII)
_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_NS_PER_HOUR = 3_600_000_000_000


def _invalid(text: str) -> ValueError:
    return ValueError(f"unrecognised time expression: {text!r}")


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8", errors="surrogatepass"))


def _is_digits(text: str) -> bool:
    return bool(text) and all("0" <= ch <= "9" for ch in text)


def _atoi(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise _invalid(text)
    value = int(text)
    if not -_INT64_MAX - 1 <= value <= _INT64_MAX:
        raise _invalid(text)
    return value


def _is_valid_date(year: int, month: int, day: int) -> bool:
    if month in (4, 6, 9, 11):
        days_in_month = 30
    elif month == 2:
        days_in_month = 29 if calendar.isleap(year) else 28
    else:
        days_in_month = 31
    return day <= days_in_month


def _check_date(text: str, year: int, month: int, day: int) -> None:
    if not (1970 <= year <= 9999 and 1 <= month <= 12 and 1 <= day <= 31):
        raise _invalid(text)
    if not _is_valid_date(year, month, day):
        raise _invalid(text)


def _start_of_day(t: datetime) -> datetime:
    return t.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(t: datetime) -> datetime:
    return t.replace(hour=23, minute=59, second=59, microsecond=999999)


def _end_of_month(t: datetime, month: int) -> datetime:
    last = calendar.monthrange(t.year, month)[1]
    return datetime(t.year, month, last, 23, 59, 59, 999999, tzinfo=t.tzinfo)


def _quarter_start_month(t: datetime) -> int:
    return (t.month - 1) // 3 * 3 + 1


def _add_date(t: datetime, years: int = 0, months: int = 0, days: int = 0) -> datetime:
    """Shift by calendar units, letting day overflow roll into the next month."""
    year, month0 = divmod(t.year * 12 + t.month - 1 + years * 12 + months, 12)
    first = t.replace(year=year, month=month0 + 1, day=1)
    return first + timedelta(days=t.day - 1 + days)


def _parse_go_duration(text: str) -> int:
    """Parse a duration such as ``1h30m`` into nanoseconds."""
    body = text
    negative = False
    if body[:1] in ("+", "-"):
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return 0
    if not body or not _DURATION_RE.fullmatch(body):
        raise _invalid(text)
    total = Decimal(0)
    for number, unit in _DURATION_PART_RE.findall(body):
        total += Decimal(number) * _DURATION_UNITS[unit]
    nanos = int(total)
    if nanos > _INT64_MAX:
        raise _invalid(text)
    return -nanos if negative else nanos


def _named_time(key: str):
    match key:
        case "now":
            return datetime.now(_LOCAL), TimeGranularity.SECOND
        case "all":
            return _ZERO_TIME, TimeGranularity.YEAR
        case (
            "today" | "yesterday" | "this-week" | "last-week"
            | "this-month" | "last-month" | "this-year" | "last-year"
        ):
            pass
        case _:
            return None
    now = datetime.now(_LOCAL)
    today = _start_of_day(now)
    match key:
        case "today":
            return today, TimeGranularity.DAY
        case "yesterday":
            return _add_date(today, days=-1), TimeGranularity.DAY
        case "this-week":
            return _add_date(today, days=-now.weekday()), TimeGranularity.DAY
        case "last-week":
            return _add_date(today, days=-now.weekday() - 7), TimeGranularity.DAY
        case "this-month":
            return today.replace(day=1), TimeGranularity.MONTH
        case "last-month":
            return _add_date(today.replace(day=1), months=-1), TimeGranularity.MONTH
        case "this-year":
            return today.replace(month=1, day=1), TimeGranularity.YEAR
        case _:
            return today.replace(year=today.year - 1, month=1, day=1), TimeGranularity.YEAR


def _parse_ago(text: str, body: str):
    now = datetime.now(_LOCAL)
    if body == "0d":
        return _start_of_day(now), TimeGranularity.DAY

    match = _AGO_RE.fullmatch(body)
    if match:
        num = _atoi(match[1])
        if num <= 0:
            raise _invalid(text)
        unit = match[2]
        if unit == "h":
            moment = datetime.now(timezone.utc) - timedelta(hours=num)
            return moment.astimezone(_LOCAL), TimeGranularity.HOUR
        if unit == "d":
            return _add_date(now, days=-num), TimeGranularity.DAY
        if unit == "w":
            return _add_date(now, days=-num * 7), TimeGranularity.DAY
        if unit == "m":
            return _add_date(now, months=-num), TimeGranularity.MONTH
        return _add_date(now, years=-num), TimeGranularity.YEAR

    nanos = _parse_go_duration(body)
    moment = (datetime.now(timezone.utc) - timedelta(microseconds=nanos // 1000)).astimezone(_LOCAL)
    if nanos < _NS_PER_HOUR:
        return moment, TimeGranularity.SECOND
    if nanos < 24 * _NS_PER_HOUR:
        return moment, TimeGranularity.HOUR
    return moment, TimeGranularity.DAY


def _parse_rfc3339(text: str):
    match = _RFC3339_RE.fullmatch(text) or _RFC3339_NO_SECONDS_RE.fullmatch(text)
    if not match:
        raise _invalid(text)
    year, month, day, hour, minute = (int(match[i]) for i in range(1, 6))
    second = int(match[6]) if match[6] else 0
    micros = int((match[7][1:] + "000000")[:6]) if match[7] else 0
    zone = match[8]
    if zone == "Z":
        tz = timezone.utc
    else:
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours >= 24 or minutes >= 60:
            raise _invalid(text)
        offset = timedelta(hours=hours, minutes=minutes)
        tz = timezone(-offset if zone[0] == "-" else offset)
    if not 1 <= month <= 12 or not 1 <= day <= 31 or not _is_valid_date(year, month, day):
        raise _invalid(text)
    return datetime(year, month, day, hour, minute, second, micros, tzinfo=tz)


def _split_date(text: str, part: str):
    """Split an 8-digit or dashed 10-character date into integers."""
    if _byte_len(part) == 8 and _is_digits(part):
        return int(part[0:4]), int(part[4:6]), int(part[6:8])
    if _byte_len(part) == 10 and part.count("-") == 2:
        pieces = part.split("-")
        return tuple(_atoi(p) for p in pieces)
    raise _invalid(text)


def _parse(text: str):
    s = text.strip()

    named = _named_time(s.lower())
    if named is not None:
        return named

    if s.endswith("-ago"):
        return _parse_ago(text, s[: -len("-ago")])

    quarter = _QUARTER_RE.fullmatch(s)
    if quarter:
        year, q = int(quarter[1]), int(quarter[2])
        if not 1970 <= year <= 9999:
            raise _invalid(text)
        return datetime(year, (q - 1) * 3 + 1, 1, tzinfo=_LOCAL), TimeGranularity.QUARTER

    size = _byte_len(s)
    digits = _is_digits(s)

    if size == 4 and digits:
        year = int(s)
        if not 1970 <= year <= 9999:
            raise _invalid(text)
        return datetime(year, 1, 1, tzinfo=_LOCAL), TimeGranularity.YEAR

    if (size == 6 and digits) or (size == 7 and s.count("-") == 1):
        if digits:
            year, month = int(s[0:4]), int(s[4:6])
        else:
            year_part, month_part = s.split("-")
            year, month = _atoi(year_part), _atoi(month_part)
        if not (1970 <= year <= 9999 and 1 <= month <= 12):
            raise _invalid(text)
        return datetime(year, month, 1, tzinfo=_LOCAL), TimeGranularity.MONTH

    if (size == 8 and digits) or (size == 10 and s.count("-") == 2):
        year, month, day = _split_date(text, s)
        _check_date(text, year, month, day)
        return datetime(year, month, day, tzinfo=_LOCAL), TimeGranularity.DAY

    if size == 12 and digits:
        year, month, day = int(s[0:4]), int(s[4:6]), int(s[6:8])
        hour, minute = int(s[8:10]), int(s[10:12])
        _check_date(text, year, month, day)
        if hour > 23 or minute > 59:
            raise _invalid(text)
        return datetime(year, month, day, hour, minute, tzinfo=_LOCAL), TimeGranularity.MINUTE

    if "/" in s:
        parts = s.split("/")
        if len(parts) != 2:
            raise _invalid(text)
        date_part, clock_part = parts
        year, month, day = _split_date(text, date_part)
        _check_date(text, year, month, day)
        if not _CLOCK_RE.fullmatch(clock_part):
            raise _invalid(text)
        hour, minute = (int(p) for p in clock_part.split(":"))
        if hour > 23 or minute > 59:
            raise _invalid(text)
        return datetime(year, month, day, hour, minute, tzinfo=_LOCAL), TimeGranularity.MINUTE

    if size == 14 and digits:
        year, month, day = int(s[0:4]), int(s[4:6]), int(s[6:8])
        hour, minute, second = int(s[8:10]), int(s[10:12]), int(s[12:14])
        _check_date(text, year, month, day)
        if hour > 23 or minute > 59 or second > 59:
            raise _invalid(text)
        moment = datetime(year, month, day, hour, minute, second, tzinfo=_LOCAL)
        return moment, TimeGranularity.SECOND

    if digits:
        stamp = int(s)
        if not 1_000_000_000 <= stamp <= 253_402_300_799:
            raise _invalid(text)
        moment = (_ALL_START + timedelta(seconds=stamp)).astimezone(_LOCAL)
        return moment, TimeGranularity.SECOND

    if "T" in s and any(ch in s for ch in "Z+-"):
        return _parse_rfc3339(s), TimeGranularity.SECOND

    raise _invalid(text)


def parse_time(text: str) -> tuple[datetime, TimeGranularity]:
    """Parse a time expression into a moment and its granularity.

    Raises ValueError if the expression is not understood.
    """
    try:
        return _parse(text)
    except OverflowError as exc:
        raise _invalid(text) from exc


def time_of(text: str) -> datetime:
    """Parse a time expression into a moment. Raises ValueError if invalid."""
    return parse_time(text)[0]


def _adjust_start(t: datetime, g: TimeGranularity) -> datetime:
    if g in (TimeGranularity.SECOND, TimeGranularity.MINUTE, TimeGranularity.HOUR):
        return t
    if g == TimeGranularity.MONTH:
        return _start_of_day(t.replace(day=1))
    if g == TimeGranularity.QUARTER:
        return _start_of_day(t.replace(month=_quarter_start_month(t), day=1))
    if g == TimeGranularity.YEAR:
        return _start_of_day(t.replace(month=1, day=1))
    return _start_of_day(t)


def _adjust_end(t: datetime, g: TimeGranularity) -> datetime:
    if g == TimeGranularity.MONTH:
        return _end_of_month(t, t.month)
    if g == TimeGranularity.QUARTER:
        return _end_of_month(t, _quarter_start_month(t) + 2)
    if g == TimeGranularity.YEAR:
        return _end_of_month(t, 12)
    return _end_of_day(t)


def _range_of(text: str) -> tuple[datetime, datetime]:
    s = text.strip()

    if s.lower() == "all":
        return _ALL_START, _ALL_END

    last = _LAST_RE.fullmatch(s)
    if last:
        num = _atoi(last[1])
        if num <= 0:
            raise _invalid(text)
        now = datetime.now(_LOCAL)
        end = _end_of_day(now)
        unit = last[2]
        if unit == "d":
            start = _add_date(now, days=-num)
        elif unit == "w":
            start = _add_date(now, days=-num * 7)
        elif unit == "m":
            start = _add_date(now, months=-num)
        else:
            start = _add_date(now, years=-num)
        return _start_of_day(start), end

    for sep in ("~", ",", " to "):
        if sep not in s:
            continue
        parts = s.split(sep)
        if len(parts) != 2:
            continue
        try:
            start_time, start_gran = parse_time(parts[0].strip())
            end_time, end_gran = parse_time(parts[1].strip())
        except ValueError:
            continue
        start = _adjust_start(start_time, start_gran)
        end = _adjust_end(end_time, end_gran)
        if start > end:
            start = _adjust_start(end_time, end_gran)
            end = _adjust_end(start_time, start_gran)
        return start, end

    moment, granularity = parse_time(s)
    if granularity in (TimeGranularity.SECOND, TimeGranularity.MINUTE, TimeGranularity.HOUR):
        return _start_of_day(moment), _end_of_day(moment)
    return _adjust_start(moment, granularity), _adjust_end(moment, granularity)


def time_range_of(text: str) -> tuple[datetime, datetime]:
    """Parse a time expression into an inclusive (start, end) range.

    Accepts single points (widened by granularity), ``a~b``, ``a,b``,
    ``a to b``, ``last-<n><d|w|m|y>`` and ``all``. Raises ValueError if invalid.
    """
    try:
        return _range_of(text)
    except OverflowError as exc:
        raise _invalid(text) from exc