import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from ...types import FilterField, PaginationParams, TimelineInterval

DEFAULT_PAGE = 1
DEFAULT_LIST_LIMIT = 20
DEFAULT_API_KEY_LIST_LIMIT = 50
DEFAULT_TOP_API_KEYS_LIMIT = 20

# Events without a usable credential never reach the credential reports
API_KEY_PRESENT: dict[str, Any] = {"apiKey": {"$nin": [None, ""]}}


class ReportFilter(BaseModel):
    """Filter shared by every report, already validated"""

    start_date: datetime | None = None
    end_date: datetime | None = None
    filter_by: FilterField | None = None
    filter_value: str | None = None

    def to_match(self) -> dict[str, Any]:
        """Translate into a MongoDB filter document"""
        match: dict[str, Any] = {}
        if self.start_date is not None and self.end_date is not None:
            match["timestamp"] = {
                "$gte": self.start_date,
                "$lte": self.end_date,
            }

        if self.filter_by is not None and self.filter_value:
            if self.filter_by == FilterField.reverse_proxy:
                match[self.filter_by.value] = {
                    "$regex": re.escape(self.filter_value),
                    "$options": "i",
                }
            else:
                match[self.filter_by.value] = self.filter_value
        return match


def parse_date(value: str | None) -> datetime | None:
    """Parse an ISO-8601 date or datetime into naive UTC

    Returns None for missing or unparseable input.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def parse_filter_field(value: str | None) -> FilterField | None:
    """Fields outside the allow-list are ignored rather than rejected"""
    if not value:
        return None
    try:
        return FilterField(value)
    except ValueError:
        return None


def parse_interval(value: str | None) -> TimelineInterval:
    try:
        return TimelineInterval(value)
    except ValueError:
        return TimelineInterval.hour


def coerce_positive_int(value: str | int | None, default: int) -> int:
    """Coerce a query value to an integer >= 1, falling back to default"""
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def build_report_filter(
    start_date: str | None = None,
    end_date: str | None = None,
    filter_by: str | None = None,
    filter_value: str | None = None,
) -> ReportFilter:
    """Build a report filter from raw request parameters

    The time range is applied only when both bounds parse; otherwise the
    report covers the whole log.
    """
    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        start = end = None

    return ReportFilter(
        start_date=start,
        end_date=end,
        filter_by=parse_filter_field(filter_by),
        filter_value=filter_value or None,
    )


def build_pagination(
    page: str | int | None,
    limit: str | int | None,
    default_limit: int = DEFAULT_LIST_LIMIT,
) -> PaginationParams:
    return PaginationParams(
        page=coerce_positive_int(page, DEFAULT_PAGE),
        limit=coerce_positive_int(limit, default_limit),
    )


def merge_match(
    match: dict[str, Any], extra: dict[str, Any]
) -> dict[str, Any]:
    """Combine two filter documents, keeping both constraints on a field"""
    if not match:
        return dict(extra)
    if match.keys() & extra.keys():
        return {"$and": [match, extra]}
    return {**match, **extra}
