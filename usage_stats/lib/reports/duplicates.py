"""Detection of credentials shared between users or backends.

A key counts as duplicated when, within the filtered window, it was seen
under more than one handle or with more than one completion source. The
distinct sets are built per key first; the predicate runs on their sizes.
"""

from typing import Any

from ...types import DuplicateApiKey
from .pipelines import Pipeline
from .query import API_KEY_PRESENT, merge_match
from .store import EventStore

DUPLICATE_PREDICATE: dict[str, Any] = {
    "$or": [
        {"handleCount": {"$gt": 1}},
        {"sourceCount": {"$gt": 1}},
    ]
}


def duplicate_api_keys_pipeline(match: dict[str, Any]) -> Pipeline:
    return [
        {"$match": merge_match(match, API_KEY_PRESENT)},
        {
            "$group": {
                "_id": "$apiKey",
                "handles": {"$addToSet": "$handle"},
                "sources": {"$addToSet": "$chatCompletionSource"},
                "proxies": {"$addToSet": "$reverseProxy"},
                "totalUsage": {"$sum": 1},
                "firstSeen": {"$min": "$timestamp"},
                "lastSeen": {"$max": "$timestamp"},
            }
        },
        {
            "$project": {
                "_id": 0,
                "apiKey": "$_id",
                "handleCount": {"$size": "$handles"},
                "sourceCount": {"$size": "$sources"},
                "proxyCount": {"$size": "$proxies"},
                "handles": 1,
                "sources": 1,
                "proxies": 1,
                "totalUsage": 1,
                "firstSeen": 1,
                "lastSeen": 1,
            }
        },
        {"$match": DUPLICATE_PREDICATE},
        {"$sort": {"totalUsage": -1, "apiKey": 1}},
    ]


async def find_duplicate_api_keys(
    store: EventStore, match: dict[str, Any]
) -> list[DuplicateApiKey]:
    rows = await store.aggregate(duplicate_api_keys_pipeline(match))
    return [DuplicateApiKey.model_validate(row) for row in rows]
