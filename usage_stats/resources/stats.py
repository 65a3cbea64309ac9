from typing import Annotated, Any

from fastapi import Depends, Query, Response, status
from fastapi.routing import APIRouter
from loguru import logger

from ..lib.auth.dependencies import require_admin
from ..lib.reports import engine
from ..lib.reports.formatting import CSV_FILENAME, api_keys_to_csv
from ..lib.reports.query import (
    DEFAULT_API_KEY_LIST_LIMIT,
    DEFAULT_LIST_LIMIT,
    DEFAULT_TOP_API_KEYS_LIMIT,
    ReportFilter,
    build_pagination,
    build_report_filter,
    coerce_positive_int,
    parse_interval,
)
from ..lib.reports.store import EventStore, get_event_store
from ..types import (
    ApiKeyDetails,
    ApiKeyFilters,
    ApiKeyUsagePage,
    DuplicateApiKey,
    ExportFormat,
    HandleStats,
    OverviewReport,
    Page,
    ProxyStats,
    SourceStats,
    TimelineBucket,
    TopApiKey,
)

router = APIRouter(
    prefix="/api/stats",
    tags=["stats"],
    dependencies=[Depends(require_admin)],
)

RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_401_UNAUTHORIZED: {
        "description": "Missing or invalid admin token",
        "content": {
            "application/json": {
                "example": {"detail": "Access denied. No token provided."}
            }
        },
    },
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "description": "The report could not be produced",
        "content": {
            "application/json": {
                "example": {"detail": "Failed to get overview"}
            }
        },
    },
}

# Query values stay raw strings; malformed ones fall back to defaults
StartDate = Annotated[str | None, Query(alias="startDate")]
EndDate = Annotated[str | None, Query(alias="endDate")]
FilterBy = Annotated[str | None, Query(alias="filterBy")]
FilterValue = Annotated[str | None, Query(alias="filterValue")]
RawInt = Annotated[str | None, Query()]
Store = Annotated[EventStore, Depends(get_event_store)]


def raw_filters(
    start_date: StartDate = None,
    end_date: EndDate = None,
    filter_by: FilterBy = None,
    filter_value: FilterValue = None,
) -> ApiKeyFilters:
    """The filter parameters exactly as the caller sent them"""
    return ApiKeyFilters(
        start_date=start_date,
        end_date=end_date,
        filter_by=filter_by,
        filter_value=filter_value,
    )


RawFilters = Annotated[ApiKeyFilters, Depends(raw_filters)]


def report_filter(raw: RawFilters) -> ReportFilter:
    built = build_report_filter(
        raw.start_date, raw.end_date, raw.filter_by, raw.filter_value
    )
    logger.debug(f"Report filter: {built.to_match()}")
    return built


Filter = Annotated[ReportFilter, Depends(report_filter)]


@router.get(
    "/overview",
    response_model=OverviewReport,
    responses=RESPONSES,
    summary="Usage Overview",
    description=(
        "Total requests, distinct users and the busiest sources and paths"
    ),
)
async def get_overview(store: Store, filters: Filter) -> OverviewReport:
    return await engine.get_overview(store, filters)


@router.get(
    "/by-handle",
    response_model=Page[HandleStats],
    responses=RESPONSES,
    summary="Usage By Handle",
    description="Per-user totals, paginated over distinct handles",
)
async def get_stats_by_handle(
    store: Store,
    filters: Filter,
    page: RawInt = None,
    limit: RawInt = None,
) -> Page[HandleStats]:
    pagination = build_pagination(page, limit, DEFAULT_LIST_LIMIT)
    return await engine.get_stats_by_handle(store, filters, pagination)


@router.get(
    "/by-source",
    response_model=list[SourceStats],
    responses=RESPONSES,
    summary="Usage By Completion Source",
)
async def get_stats_by_source(
    store: Store, filters: Filter
) -> list[SourceStats]:
    return await engine.get_stats_by_source(store, filters)


@router.get(
    "/by-proxy",
    response_model=list[ProxyStats],
    responses=RESPONSES,
    summary="Usage By Reverse Proxy",
)
async def get_stats_by_proxy(
    store: Store, filters: Filter
) -> list[ProxyStats]:
    return await engine.get_stats_by_proxy(store, filters)


@router.get(
    "/timeline",
    response_model=list[TimelineBucket],
    responses=RESPONSES,
    summary="Usage Timeline",
    description="Requests per minute, hour (default) or day",
)
async def get_timeline(
    store: Store,
    filters: Filter,
    interval: Annotated[str | None, Query()] = None,
) -> list[TimelineBucket]:
    return await engine.get_timeline(store, filters, parse_interval(interval))


@router.get(
    "/api-keys",
    response_model=ApiKeyUsagePage,
    responses={
        **RESPONSES,
        status.HTTP_200_OK: {
            "description": "JSON page, or a CSV attachment with format=csv",
            "content": {"text/csv": {}},
        },
    },
    summary="List API Keys",
    description=(
        "Credential usage grouped by key, handle, source, proxy and key "
        "source. Pass format=csv to download the page as CSV."
    ),
)
async def list_api_keys(
    store: Store,
    filters: Filter,
    echoed: RawFilters,
    page: RawInt = None,
    limit: RawInt = None,
    format: Annotated[str | None, Query()] = None,  # noqa: A002
) -> Any:
    pagination = build_pagination(page, limit, DEFAULT_API_KEY_LIST_LIMIT)

    if format == ExportFormat.csv.value:
        items = await engine.export_api_keys(store, filters, pagination)
        return Response(
            content=api_keys_to_csv(items),
            media_type="text/csv",
            headers={
                "Content-Disposition": f"attachment; filename={CSV_FILENAME}"
            },
        )

    return await engine.get_api_keys(store, filters, pagination, echoed)


@router.get(
    "/api-key-details/{api_key}",
    response_model=ApiKeyDetails,
    responses=RESPONSES,
    summary="API Key Details",
    description="Totals and an hourly timeline for a single credential",
)
async def get_api_key_details(
    api_key: str, store: Store, filters: Filter
) -> ApiKeyDetails:
    return await engine.get_api_key_details(store, filters, api_key)


@router.get(
    "/duplicate-api-keys",
    response_model=list[DuplicateApiKey],
    responses=RESPONSES,
    summary="Shared API Keys",
    description=(
        "Keys seen under more than one handle or more than one completion "
        "source"
    ),
)
async def get_duplicate_api_keys(
    store: Store, filters: Filter
) -> list[DuplicateApiKey]:
    return await engine.get_duplicate_api_keys(store, filters)


@router.get(
    "/top-api-keys",
    response_model=list[TopApiKey],
    responses=RESPONSES,
    summary="Most Used API Keys",
)
async def get_top_api_keys(
    store: Store, filters: Filter, limit: RawInt = None
) -> list[TopApiKey]:
    return await engine.get_top_api_keys(
        store, filters, coerce_positive_int(limit, DEFAULT_TOP_API_KEYS_LIMIT)
    )
