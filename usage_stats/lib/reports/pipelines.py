"""Aggregation pipelines for the usage reports.

Every function here is pure: it takes an already-built match document and
returns the pipeline the event store should run. Field references use the
stored (camelCase) names.
"""

from datetime import datetime
from typing import Any

from ...types import TimelineInterval
from .query import API_KEY_PRESENT, merge_match

Pipeline = list[dict[str, Any]]

TOP_VALUES_LIMIT = 10

CREDENTIAL_GROUP_KEY: dict[str, str] = {
    "apiKey": "$apiKey",
    "handle": "$handle",
    "chatCompletionSource": "$chatCompletionSource",
    "reverseProxy": "$reverseProxy",
    "apiKeySource": "$apiKeySource",
}

# Sorting on every group key part keeps pages disjoint
CREDENTIAL_SORT: dict[str, int] = {
    "lastUsed": -1,
    **dict.fromkeys(CREDENTIAL_GROUP_KEY, 1),
}

TIMELINE_FORMATS: dict[TimelineInterval, str] = {
    TimelineInterval.minute: "%Y-%m-%d %H:%M",
    TimelineInterval.hour: "%Y-%m-%d %H:00",
    TimelineInterval.day: "%Y-%m-%d",
}

_DATE_PART_OPERATORS: dict[str, str] = {
    "year": "$year",
    "month": "$month",
    "day": "$dayOfMonth",
    "hour": "$hour",
    "minute": "$minute",
}

TIMELINE_PARTS: dict[TimelineInterval, tuple[str, ...]] = {
    TimelineInterval.minute: ("year", "month", "day", "hour", "minute"),
    TimelineInterval.hour: ("year", "month", "day", "hour"),
    TimelineInterval.day: ("year", "month", "day"),
}


def top_values(
    field: str, match: dict[str, Any], limit: int = TOP_VALUES_LIMIT
) -> Pipeline:
    """Most frequent values of one field"""
    return [
        {"$match": match},
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
        {"$limit": limit},
        {"$project": {"_id": 0, "name": "$_id", "count": 1}},
    ]


def count_groups(match: dict[str, Any], key: str | dict[str, str]) -> Pipeline:
    """Number of distinct groups, used for pagination totals"""
    return [
        {"$match": match},
        {"$group": {"_id": key}},
        {"$count": "total"},
    ]


def by_handle(match: dict[str, Any], offset: int, limit: int) -> Pipeline:
    return [
        {"$match": match},
        {
            "$group": {
                "_id": "$handle",
                "totalRequests": {"$sum": 1},
                "lastActivity": {"$max": "$timestamp"},
                "sources": {"$addToSet": "$chatCompletionSource"},
                "paths": {"$addToSet": "$path"},
            }
        },
        {"$sort": {"totalRequests": -1, "_id": 1}},
        {"$skip": offset},
        {"$limit": limit},
        {
            "$project": {
                "_id": 0,
                "handle": "$_id",
                "totalRequests": 1,
                "lastActivity": 1,
                "sources": 1,
                "paths": 1,
            }
        },
    ]


def _activity_by(field: str, output: str, match: dict[str, Any]) -> Pipeline:
    return [
        {"$match": match},
        {
            "$group": {
                "_id": f"${field}",
                "totalRequests": {"$sum": 1},
                "uniqueUsers": {"$addToSet": "$handle"},
                "lastActivity": {"$max": "$timestamp"},
            }
        },
        {
            "$project": {
                "_id": 0,
                output: "$_id",
                "totalRequests": 1,
                "uniqueUsers": {"$size": "$uniqueUsers"},
                "lastActivity": 1,
            }
        },
        {"$sort": {"totalRequests": -1, output: 1}},
    ]


def by_source(match: dict[str, Any]) -> Pipeline:
    return _activity_by("chatCompletionSource", "source", match)


def by_proxy(match: dict[str, Any]) -> Pipeline:
    proxied = merge_match(match, {"reverseProxy": {"$ne": None}})
    return _activity_by("reverseProxy", "reverseProxy", proxied)


def timeline(
    match: dict[str, Any],
    interval: TimelineInterval = TimelineInterval.hour,
) -> Pipeline:
    """Event counts per time bucket

    Buckets group on the truncated date parts of the stored timestamp; the
    label is rendered afterwards with bucket_label.
    """
    parts = TIMELINE_PARTS[interval]
    return [
        {"$match": match},
        {
            "$group": {
                "_id": {
                    part: {_DATE_PART_OPERATORS[part]: "$timestamp"}
                    for part in parts
                },
                "count": {"$sum": 1},
                "uniqueUsers": {"$addToSet": "$handle"},
            }
        },
        {
            "$project": {
                "_id": 0,
                **{part: f"$_id.{part}" for part in parts},
                "count": 1,
                "uniqueUsers": {"$size": "$uniqueUsers"},
            }
        },
        {"$sort": {part: 1 for part in parts}},
    ]


def bucket_label(row: dict[str, Any], interval: TimelineInterval) -> str:
    """Render the date parts of a timeline row, e.g. ``2024-01-01 10:00``"""
    moment = datetime(
        row["year"],
        row["month"],
        row["day"],
        row.get("hour", 0),
        row.get("minute", 0),
    )
    return moment.strftime(TIMELINE_FORMATS[interval])


def api_key_usage(match: dict[str, Any], offset: int, limit: int) -> Pipeline:
    """Usage per credential and the handle/source/proxy it was seen with"""
    return [
        {"$match": merge_match(match, API_KEY_PRESENT)},
        {
            "$group": {
                "_id": CREDENTIAL_GROUP_KEY,
                "firstUsed": {"$min": "$timestamp"},
                "lastUsed": {"$max": "$timestamp"},
                "totalUsage": {"$sum": 1},
                "paths": {"$addToSet": "$path"},
                "secretKeys": {"$addToSet": "$secretKey"},
            }
        },
        {
            "$project": {
                "_id": 0,
                **{field: f"$_id.{field}" for field in CREDENTIAL_GROUP_KEY},
                "firstUsed": 1,
                "lastUsed": 1,
                "totalUsage": 1,
                "paths": 1,
                "secretKeys": 1,
            }
        },
        {"$sort": CREDENTIAL_SORT},
        {"$skip": offset},
        {"$limit": limit},
    ]


def count_api_key_usage(match: dict[str, Any]) -> Pipeline:
    return count_groups(
        merge_match(match, API_KEY_PRESENT), CREDENTIAL_GROUP_KEY
    )


def api_key_stats(match: dict[str, Any], api_key: str) -> Pipeline:
    """Totals for a single credential"""
    return [
        {"$match": merge_match(match, {"apiKey": api_key})},
        {
            "$group": {
                "_id": None,
                "totalRequests": {"$sum": 1},
                "handles": {"$addToSet": "$handle"},
                "sources": {"$addToSet": "$chatCompletionSource"},
                "proxies": {"$addToSet": "$reverseProxy"},
                "paths": {"$addToSet": "$path"},
                "firstUsed": {"$min": "$timestamp"},
                "lastUsed": {"$max": "$timestamp"},
                "apiKeySource": {"$first": "$apiKeySource"},
            }
        },
        {
            "$project": {
                "_id": 0,
                "totalRequests": 1,
                "uniqueHandles": {"$size": "$handles"},
                "uniqueSources": {"$size": "$sources"},
                "uniqueProxies": {"$size": "$proxies"},
                "uniquePaths": {"$size": "$paths"},
                "firstUsed": 1,
                "lastUsed": 1,
                "apiKeySource": 1,
                "handles": 1,
                "sources": 1,
                "proxies": 1,
                "paths": 1,
            }
        },
    ]


def api_key_timeline(match: dict[str, Any], api_key: str) -> Pipeline:
    return timeline(
        merge_match(match, {"apiKey": api_key}), TimelineInterval.hour
    )


def top_api_keys(match: dict[str, Any], limit: int) -> Pipeline:
    return [
        {"$match": merge_match(match, API_KEY_PRESENT)},
        {
            "$group": {
                "_id": "$apiKey",
                "totalUsage": {"$sum": 1},
                "handles": {"$addToSet": "$handle"},
                "sources": {"$addToSet": "$chatCompletionSource"},
                "lastUsed": {"$max": "$timestamp"},
                "apiKeySource": {"$first": "$apiKeySource"},
            }
        },
        {
            "$project": {
                "_id": 0,
                "apiKey": "$_id",
                "totalUsage": 1,
                "uniqueHandles": {"$size": "$handles"},
                "uniqueSources": {"$size": "$sources"},
                "lastUsed": 1,
                "apiKeySource": 1,
            }
        },
        {"$sort": {"totalUsage": -1, "apiKey": 1}},
        {"$limit": limit},
    ]
