import csv
import io
import math
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from ...types import ApiKeyUsage, Pagination, PaginationParams

CSV_HEADERS = [
    "API Key",
    "Handle",
    "Source",
    "Reverse Proxy",
    "Key Source",
    "Total Usage",
    "First Used",
    "Last Used",
    "Paths",
    "Secret Keys",
]

CSV_FILENAME = "api-keys.csv"


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def pagination_for(params: PaginationParams, total: int) -> Pagination:
    """Pagination block for a page of grouped rows"""
    return Pagination(
        page=params.page,
        limit=params.limit,
        total=total,
        total_pages=total_pages(total, params.limit),
    )


def isoformat_utc(value: datetime | None) -> str:
    """ISO-8601 with millisecond precision and a Z suffix, or empty"""
    if value is None:
        return ""
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    millis = value.microsecond // 1000
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{millis:03d}Z"


def _join(values: Iterable[str | None]) -> str:
    return ";".join(value for value in values if value)


def api_key_usage_row(item: ApiKeyUsage) -> list[str | int]:
    return [
        item.api_key or "",
        item.handle or "",
        item.chat_completion_source or "",
        item.reverse_proxy or "",
        item.api_key_source or "",
        item.total_usage or 0,
        isoformat_utc(item.first_used),
        isoformat_utc(item.last_used),
        _join(item.paths),
        _join(item.secret_keys),
    ]


def api_keys_to_csv(items: Sequence[ApiKeyUsage]) -> str:
    """Render credential usage rows as CSV, every field quoted"""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for item in items:
        writer.writerow(api_key_usage_row(item))
    return output.getvalue()


def mask_api_key(api_key: str | None) -> str:
    """Shorten a credential for log lines"""
    if not api_key:
        return ""
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"
