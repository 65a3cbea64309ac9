"""Report runners.

Each function runs one named report against the event store and returns
validated rows. Any store or validation failure is logged here with full
detail and re-raised as ReportError, whose message is safe for callers.
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from loguru import logger

from ...exc import ReportError
from ...types import (
    ApiKeyDetails,
    ApiKeyFilters,
    ApiKeyStats,
    ApiKeyUsage,
    ApiKeyUsagePage,
    DuplicateApiKey,
    GroupCount,
    HandleStats,
    OverviewReport,
    Page,
    PaginationParams,
    ProxyStats,
    SourceStats,
    TimelineBucket,
    TimelineInterval,
    TopApiKey,
)
from . import pipelines
from .duplicates import find_duplicate_api_keys
from .formatting import mask_api_key, pagination_for
from .query import ReportFilter
from .store import EventStore

P = ParamSpec("P")
R = TypeVar("R")


def report(
    name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Turn any failure inside a report into ReportError(name)"""

    def decorator(
        func: Callable[P, Awaitable[R]],
    ) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.exception(f"Error getting {name}: {e}")
                raise ReportError(name) from e

        return wrapper

    return decorator


async def _count_groups(
    store: EventStore, pipeline: pipelines.Pipeline
) -> int:
    rows = await store.aggregate(pipeline)
    return rows[0]["total"] if rows else 0


def _timeline_buckets(
    rows: list[dict], interval: TimelineInterval
) -> list[TimelineBucket]:
    return [
        TimelineBucket(
            bucket=pipelines.bucket_label(row, interval),
            count=row["count"],
            unique_users=row["uniqueUsers"],
        )
        for row in rows
    ]


@report("overview")
async def get_overview(
    store: EventStore, report_filter: ReportFilter
) -> OverviewReport:
    match = report_filter.to_match()
    total, handles, sources, paths = await asyncio.gather(
        store.count(match),
        store.distinct_values("handle", match),
        store.aggregate(pipelines.top_values("chatCompletionSource", match)),
        store.aggregate(pipelines.top_values("path", match)),
    )
    return OverviewReport(
        total_requests=total,
        unique_users=len(handles),
        top_sources=[GroupCount.model_validate(row) for row in sources],
        top_paths=[GroupCount.model_validate(row) for row in paths],
    )


@report("stats by handle")
async def get_stats_by_handle(
    store: EventStore,
    report_filter: ReportFilter,
    pagination: PaginationParams,
) -> Page[HandleStats]:
    match = report_filter.to_match()
    rows, total = await asyncio.gather(
        store.aggregate(
            pipelines.by_handle(match, pagination.offset, pagination.limit)
        ),
        _count_groups(store, pipelines.count_groups(match, "$handle")),
    )
    return Page[HandleStats](
        data=[HandleStats.model_validate(row) for row in rows],
        pagination=pagination_for(pagination, total),
    )


@report("stats by source")
async def get_stats_by_source(
    store: EventStore, report_filter: ReportFilter
) -> list[SourceStats]:
    rows = await store.aggregate(pipelines.by_source(report_filter.to_match()))
    return [SourceStats.model_validate(row) for row in rows]


@report("stats by proxy")
async def get_stats_by_proxy(
    store: EventStore, report_filter: ReportFilter
) -> list[ProxyStats]:
    rows = await store.aggregate(pipelines.by_proxy(report_filter.to_match()))
    return [ProxyStats.model_validate(row) for row in rows]


@report("timeline stats")
async def get_timeline(
    store: EventStore,
    report_filter: ReportFilter,
    interval: TimelineInterval = TimelineInterval.hour,
) -> list[TimelineBucket]:
    rows = await store.aggregate(
        pipelines.timeline(report_filter.to_match(), interval)
    )
    return _timeline_buckets(rows, interval)


async def _api_key_usage(
    store: EventStore,
    report_filter: ReportFilter,
    pagination: PaginationParams,
) -> tuple[list[ApiKeyUsage], int]:
    match = report_filter.to_match()
    rows, total = await asyncio.gather(
        store.aggregate(
            pipelines.api_key_usage(
                match, pagination.offset, pagination.limit
            )
        ),
        _count_groups(store, pipelines.count_api_key_usage(match)),
    )
    return [ApiKeyUsage.model_validate(row) for row in rows], total


@report("API keys")
async def get_api_keys(
    store: EventStore,
    report_filter: ReportFilter,
    pagination: PaginationParams,
    filters: ApiKeyFilters,
) -> ApiKeyUsagePage:
    items, total = await _api_key_usage(store, report_filter, pagination)
    return ApiKeyUsagePage(
        data=items,
        pagination=pagination_for(pagination, total),
        filters=filters,
    )


@report("API keys")
async def export_api_keys(
    store: EventStore,
    report_filter: ReportFilter,
    pagination: PaginationParams,
) -> list[ApiKeyUsage]:
    items, _ = await _api_key_usage(store, report_filter, pagination)
    return items


@report("API key details")
async def get_api_key_details(
    store: EventStore, report_filter: ReportFilter, api_key: str
) -> ApiKeyDetails:
    logger.debug(f"Loading details for API key {mask_api_key(api_key)}")
    match = report_filter.to_match()
    stats, timeline = await asyncio.gather(
        store.aggregate(pipelines.api_key_stats(match, api_key)),
        store.aggregate(pipelines.api_key_timeline(match, api_key)),
    )
    # A group over no events may still yield a zero row
    found = bool(stats and stats[0]["totalRequests"])
    return ApiKeyDetails(
        api_key=api_key,
        stats=ApiKeyStats.model_validate(stats[0]) if found else {},
        timeline=_timeline_buckets(timeline, TimelineInterval.hour),
    )


@report("duplicate API keys")
async def get_duplicate_api_keys(
    store: EventStore, report_filter: ReportFilter
) -> list[DuplicateApiKey]:
    return await find_duplicate_api_keys(store, report_filter.to_match())


@report("top API keys")
async def get_top_api_keys(
    store: EventStore, report_filter: ReportFilter, limit: int
) -> list[TopApiKey]:
    rows = await store.aggregate(
        pipelines.top_api_keys(report_filter.to_match(), limit)
    )
    return [TopApiKey.model_validate(row) for row in rows]
