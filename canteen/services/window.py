from datetime import date, datetime, time, timezone, tzinfo
from typing import Any, Iterable, List, Optional, TypeVar
from zoneinfo import ZoneInfo

from canteen.config import settings
from canteen.schemas.common import resolve_timestamp
from canteen.schemas.reports import ALL, ReportPeriod, ServerReport

T = TypeVar("T")

def _report_tz() -> tzinfo:
    if settings.REPORT_TZ.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(settings.REPORT_TZ)


MONTH_NAMES = (
    "All", "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    ISO-8601 text (optionally `Z`-suffixed) or epoch milliseconds.
    Aware values are shifted into settings.REPORT_TZ and made naive; naive
    values are already local.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(value / 1000, tz=_report_tz())
        except (OverflowError, OSError, ValueError):
            return None
    else:
        s = str(value).strip()
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(_report_tz()).replace(tzinfo=None)
    return dt


def in_window(timestamp: Any, period: ReportPeriod) -> bool:
    d = parse_timestamp(timestamp)
    if d is None:
        return False

    if period.is_date_range:
        start = datetime.combine(period.start_date, time.min)
        end = datetime.combine(period.end_date, time.max)
        return start <= d <= end

    if period.month == ALL and period.year == ALL:
        return True
    if period.month == ALL:
        return int(period.year) == d.year
    if period.year == ALL:
        return int(period.month) == d.month
    return int(period.month) == d.month and int(period.year) == d.year


def filter_window(entities: Iterable[T], period: ReportPeriod) -> List[T]:
    return [e for e in entities if in_window(resolve_timestamp(e), period)]


def _short_date(d: date) -> str:
    return f"{d.month}/{d.day}/{d.year}"


def month_name(month: str) -> str:
    n = int(month) if str(month).isdigit() else 0
    return MONTH_NAMES[n] if 1 <= n <= 12 else f"Month {month}"


def period_label(period: ReportPeriod) -> str:
    if period.is_date_range:
        return f"{_short_date(period.start_date)} to {_short_date(period.end_date)}"
    if period.month == ALL and period.year == ALL:
        return "All time"
    if period.month == ALL:
        return f"{period.year} (all months)"
    if period.year == ALL:
        return f"{month_name(period.month)} (all years)"
    return f"{month_name(period.month)} {period.year}"


def year_options(reservations: Iterable[Any], top_ups: Iterable[Any],
                 server_report: Optional[ServerReport] = None, today: Optional[date] = None) -> List[str]:
    seen: set[int] = set()
    for e in [*reservations, *top_ups]:
        d = parse_timestamp(resolve_timestamp(e))
        if d is not None:
            seen.add(d.year)
    if server_report is not None:
        seen.update(int(y) for y in server_report.years if str(y).isdigit())
    seen.discard(0)
    current = (today or date.today()).year
    years = [str(y) for y in sorted(seen, reverse=True)]
    if str(current) not in years:
        years.insert(0, str(current))
    return [ALL, *years]
