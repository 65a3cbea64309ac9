from collections.abc import Iterator

import mongomock
import pytest
from mongoengine import connect, disconnect
from pymongo.collection import Collection

from usage_stats.lib.reports.store import EventStore
from usage_stats.models import ApiEvent


@pytest.fixture(scope="session", autouse=True)
def mongo_connection() -> Iterator[None]:
    """In-process MongoDB shared by the whole test session"""
    connect(
        "usage_stats_test",
        host="mongodb://localhost",
        mongo_client_class=mongomock.MongoClient,
    )
    yield
    disconnect()


@pytest.fixture
def events() -> Iterator[Collection]:
    """Empty event collection, dropped again after the test"""
    ApiEvent.drop_collection()
    yield ApiEvent._get_collection()
    ApiEvent.drop_collection()


@pytest.fixture
def store(events: Collection) -> EventStore:
    return EventStore()
