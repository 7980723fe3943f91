"""Pure metric helpers used by the analytics service.

Nothing here touches the database; inputs are plain values or rows already
loaded for one tenant.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Iterable, Optional

from xenofy_engine.common.exceptions import ValidationError
from xenofy_engine.common.models import as_utc

# Customer segmentation bands (order currency units).
HIGH_VALUE_MIN = 100_000
REGULAR_MIN = 50_000
REGULAR_MAX = 100_000
LOW_VALUE_MAX = 10_000
SEGMENT_MONTH_DAYS = 30
REGULAR_RECENCY_MONTHS = 6
NEW_CUSTOMER_MONTHS = 3

END_OF_DAY = time(23, 59, 59, 999000)

LOW_STOCK_MAX = 5
TOP_SPENDERS_LIMIT = 5


@dataclass
class CustomerSpend:
    """Order history summary for one customer."""
    customer_id: str
    total_spend: float = 0.0
    total_orders: int = 0
    total_items: int = 0
    first_order_at: Optional[datetime] = None
    last_order_at: Optional[datetime] = None

    @property
    def avg_order_value(self) -> float:
        return self.total_spend / self.total_orders if self.total_orders else 0.0

    def add_order(self, total_price: float, created_at: datetime, items: int = 0) -> None:
        created_at = as_utc(created_at)
        self.total_spend += total_price or 0.0
        self.total_orders += 1
        self.total_items += items
        if self.first_order_at is None or created_at < self.first_order_at:
            self.first_order_at = created_at
        if self.last_order_at is None or created_at > self.last_order_at:
            self.last_order_at = created_at


def months_since(moment: datetime, now: datetime) -> float:
    """Elapsed time in fixed thirty-day months."""
    return (now - as_utc(moment)).total_seconds() / (SEGMENT_MONTH_DAYS * 86400)


def segment_counts(spends: Iterable[CustomerSpend], now: datetime) -> dict[str, int]:
    """Count customers per segment. Segments are independent and may overlap."""
    counts = {"highValue": 0, "regular": 0, "new": 0, "lowValue": 0}
    for spend in spends:
        total = spend.total_spend
        if total > HIGH_VALUE_MIN:
            counts["highValue"] += 1
        if (
            REGULAR_MIN <= total <= REGULAR_MAX
            and spend.last_order_at is not None
            and months_since(spend.last_order_at, now) <= REGULAR_RECENCY_MONTHS
        ):
            counts["regular"] += 1
        if (
            spend.first_order_at is not None
            and months_since(spend.first_order_at, now) <= NEW_CUSTOMER_MONTHS
        ):
            counts["new"] += 1
        if total < LOW_VALUE_MAX:
            counts["lowValue"] += 1
    return counts


def top_spenders(
    spends: Iterable[CustomerSpend], limit: int = TOP_SPENDERS_LIMIT
) -> list[CustomerSpend]:
    """Highest total spend first; ties keep their input order."""
    return sorted(spends, key=lambda s: s.total_spend, reverse=True)[:limit]


def abandonment_rate(abandoned: int, completed: int) -> float:
    total = abandoned + completed
    if total == 0:
        return 0.0
    return round(abandoned / total * 100, 2)


def growth_rate(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 2)


def month_start(now: datetime) -> datetime:
    now = as_utc(now)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


def previous_month_start(now: datetime) -> datetime:
    start = month_start(now)
    if start.month == 1:
        return start.replace(year=start.year - 1, month=12)
    return start.replace(month=start.month - 1)


def _parse_day(value: str, label: str) -> date:
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return as_utc(datetime.fromisoformat(text)).date()
    except (ValueError, OverflowError) as e:
        raise ValidationError(f"Invalid {label}: expected YYYY-MM-DD") from e


def parse_date_range(
    start: Optional[str], end: Optional[str]
) -> tuple[Optional[datetime], Optional[datetime]]:
    """Turn query dates into an inclusive UTC window.

    The start is midnight of its day; the end runs through the final
    millisecond of its day. Either bound may be omitted.
    """
    start_at = end_at = None
    if start:
        start_at = datetime.combine(_parse_day(start, "startDate"), time.min, tzinfo=timezone.utc)
    if end:
        end_at = datetime.combine(_parse_day(end, "endDate"), END_OF_DAY, tzinfo=timezone.utc)
    if start_at and end_at and start_at > end_at:
        raise ValidationError("startDate must not be after endDate")
    return start_at, end_at


def day_key(moment: datetime) -> str:
    return as_utc(moment).strftime("%Y-%m-%d")


def month_key(moment: datetime) -> str:
    return as_utc(moment).strftime("%Y-%m")
