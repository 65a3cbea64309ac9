import asyncio
from typing import Any

from pymongo.collection import Collection

from ...models import ApiEvent
from .pipelines import Pipeline


class EventStore:
    """Read/append access to the event collection

    pymongo is blocking, so every call runs in a worker thread and returns
    the complete result set.
    """

    @property
    def collection(self) -> Collection:
        return ApiEvent._get_collection()

    async def count(self, match: dict[str, Any]) -> int:
        return await asyncio.to_thread(self.collection.count_documents, match)

    async def distinct_values(
        self, field: str, match: dict[str, Any]
    ) -> list[Any]:
        return await asyncio.to_thread(self.collection.distinct, field, match)

    async def aggregate(self, pipeline: Pipeline) -> list[dict[str, Any]]:
        def run() -> list[dict[str, Any]]:
            return list(self.collection.aggregate(pipeline))

        return await asyncio.to_thread(run)

    async def insert(self, event: ApiEvent) -> ApiEvent:
        await event.async_save()
        return event


def get_event_store() -> EventStore:
    """FastAPI dependency returning the default event store"""
    return EventStore()
