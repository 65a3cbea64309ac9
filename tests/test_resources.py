"""
Tests for the HTTP routes.

The app runs without its lifespan, against the in-memory MongoDB set up in
conftest.
"""

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from usage_stats.app import app
from usage_stats.config import config
from usage_stats.lib.reports.store import EventStore

from .factories import add_events, make_event

INGEST_KEY = "ingest-secret"
ADMIN_TOKEN = "admin-secret"
ADMIN_HEADERS = {"Authorization": f"Bearer {ADMIN_TOKEN}"}
INGEST_HEADERS = {"Authorization": f"Bearer {INGEST_KEY}"}


@pytest.fixture(autouse=True)
def tokens(monkeypatch):
    monkeypatch.setattr(config, "ingest_api_key", INGEST_KEY)
    monkeypatch.setattr(config, "admin_token", ADMIN_TOKEN)


@pytest.fixture
def client(events) -> TestClient:
    return TestClient(app)


class TestIngestion:
    """Tests for POST /api/stats/api-info."""

    def test_stores_event(self, client, events):
        response = client.post(
            "/api/stats/api-info",
            headers=INGEST_HEADERS,
            json={
                "handle": "alice",
                "timestamp": "2024-01-01T10:15:00Z",
                "path": "/api/backends/chat-completions/generate",
                "reverseProxy": "https://proxy.example",
                "chatCompletionSource": "openai",
                "apiKey": "sk-123",
                "apiKeySource": "proxy_password",
            },
        )

        assert response.status_code == 201
        assert response.json() == {"message": "API info saved successfully"}
        stored = events.find_one({"handle": "alice"})
        assert stored["apiKey"] == "sk-123"
        assert stored["chatCompletionSource"] == "openai"
        assert stored["apiKeySource"] == "proxy_password"
        assert "createdAt" in stored

    def test_rejects_unknown_key_source(self, client):
        response = client.post(
            "/api/stats/api-info",
            headers=INGEST_HEADERS,
            json={
                "handle": "alice",
                "timestamp": "2024-01-01T10:15:00Z",
                "path": "/x",
                "apiKeySource": "guessed",
            },
        )

        assert response.status_code == 422

    def test_requires_handle(self, client):
        response = client.post(
            "/api/stats/api-info",
            headers=INGEST_HEADERS,
            json={"timestamp": "2024-01-01T10:15:00Z", "path": "/x"},
        )

        assert response.status_code == 422

    def test_requires_ingest_key(self, client):
        response = client.post(
            "/api/stats/api-info",
            headers=ADMIN_HEADERS,
            json={
                "handle": "a",
                "timestamp": "2024-01-01T10:15:00Z",
                "path": "/x",
            },
        )

        assert response.status_code == 401

    def test_store_failure(self, client):
        with patch.object(
            EventStore, "insert", AsyncMock(side_effect=RuntimeError("down"))
        ):
            response = client.post(
                "/api/stats/api-info",
                headers=INGEST_HEADERS,
                json={
                    "handle": "a",
                    "timestamp": "2024-01-01T10:15:00Z",
                    "path": "/x",
                },
            )

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to save API info"}


class TestAuthentication:
    """Report routes are gated by the admin token."""

    def test_missing_token(self, client):
        response = client.get("/api/stats/overview")
        assert response.status_code == 401
        assert response.json() == {
            "detail": "Access denied. No token provided."
        }

    def test_wrong_token(self, client):
        response = client.get(
            "/api/stats/overview",
            headers={"Authorization": "Bearer nope"},
        )
        assert response.status_code == 401

    def test_cookie_token(self, client):
        client.cookies.set("adminToken", ADMIN_TOKEN)
        response = client.get("/api/stats/overview")
        assert response.status_code == 200

    def test_unconfigured_token(self, client, monkeypatch):
        monkeypatch.setattr(config, "admin_token", "")
        response = client.get("/api/stats/overview", headers=ADMIN_HEADERS)
        assert response.status_code == 500


class TestReports:
    """Report routes return camelCase JSON."""

    def test_overview(self, client, events):
        add_events(events, make_event(), make_event(handle="bob"))

        response = client.get("/api/stats/overview", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["totalRequests"] == 2
        assert body["uniqueUsers"] == 2
        assert body["topSources"] == [{"name": "openai", "count": 2}]

    def test_by_handle_pagination(self, client, events):
        add_events(
            events, *[make_event(handle=f"user-{n:02d}") for n in range(45)]
        )

        response = client.get(
            "/api/stats/by-handle",
            params={"page": "2", "limit": "20"},
            headers=ADMIN_HEADERS,
        )

        body = response.json()
        assert body["pagination"] == {
            "page": 2,
            "limit": 20,
            "total": 45,
            "totalPages": 3,
        }
        assert body["data"][0]["handle"] == "user-20"
        assert body["data"][0]["totalRequests"] == 1

    def test_malformed_parameters_fall_back(self, client, events):
        add_events(events, make_event())

        response = client.get(
            "/api/stats/by-handle",
            params={
                "page": "abc",
                "limit": "-1",
                "startDate": "not-a-date",
                "endDate": "2024-12-31",
                "filterBy": "secretKey",
                "filterValue": "x",
            },
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"]["page"] == 1
        assert body["pagination"]["limit"] == 20
        assert body["pagination"]["total"] == 1

    def test_timeline_interval(self, client, events):
        add_events(events, make_event())

        response = client.get(
            "/api/stats/timeline",
            params={"interval": "day"},
            headers=ADMIN_HEADERS,
        )

        assert response.json() == [
            {"bucket": "2024-01-01", "count": 1, "uniqueUsers": 1}
        ]

    def test_api_keys_json(self, client, events):
        add_events(events, make_event(apiKey="sk-1"))

        response = client.get(
            "/api/stats/api-keys",
            params={"filterBy": "handle", "filterValue": "alice"},
            headers=ADMIN_HEADERS,
        )

        body = response.json()
        assert body["pagination"]["limit"] == 50
        assert body["data"][0]["apiKey"] == "sk-1"
        assert body["data"][0]["totalUsage"] == 1
        assert body["filters"] == {
            "filterBy": "handle",
            "filterValue": "alice",
            "startDate": None,
            "endDate": None,
        }

    def test_api_keys_echo_raw_dates(self, client, events):
        add_events(
            events,
            make_event(apiKey="sk-1", timestamp=datetime(2024, 1, 1, 9)),
            make_event(apiKey="sk-2", timestamp=datetime(2024, 2, 1, 9)),
        )

        response = client.get(
            "/api/stats/api-keys",
            params={"startDate": "2024-01-01", "endDate": "2024-01-02"},
            headers=ADMIN_HEADERS,
        )

        body = response.json()
        assert [row["apiKey"] for row in body["data"]] == ["sk-1"]
        assert body["pagination"]["total"] == 1
        assert body["filters"] == {
            "filterBy": None,
            "filterValue": None,
            "startDate": "2024-01-01",
            "endDate": "2024-01-02",
        }

    def test_api_keys_csv(self, client, events):
        add_events(events, make_event(apiKey="sk-1"))

        response = client.get(
            "/api/stats/api-keys",
            params={"format": "csv"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert (
            response.headers["content-disposition"]
            == "attachment; filename=api-keys.csv"
        )
        lines = response.text.splitlines()
        assert lines[0].startswith('"API Key","Handle"')
        assert lines[1].startswith('"sk-1","alice"')

    def test_api_key_details_unknown(self, client, events):
        response = client.get(
            "/api/stats/api-key-details/sk-missing", headers=ADMIN_HEADERS
        )

        assert response.status_code == 200
        assert response.json() == {
            "apiKey": "sk-missing",
            "stats": {},
            "timeline": [],
        }

    def test_duplicate_api_keys(self, client, events):
        add_events(
            events,
            make_event(handle="alice", apiKey="K1"),
            make_event(handle="bob", apiKey="K1"),
        )

        response = client.get(
            "/api/stats/duplicate-api-keys", headers=ADMIN_HEADERS
        )

        [duplicate] = response.json()
        assert duplicate["apiKey"] == "K1"
        assert duplicate["handleCount"] == 2
        assert duplicate["sourceCount"] == 1

    def test_top_api_keys_limit(self, client, events):
        add_events(events, *[make_event(apiKey=f"sk-{n}") for n in range(5)])

        response = client.get(
            "/api/stats/top-api-keys",
            params={"limit": "2"},
            headers=ADMIN_HEADERS,
        )

        assert len(response.json()) == 2

    def test_store_failure_is_not_leaked(self, client):
        with patch.object(
            EventStore,
            "aggregate",
            AsyncMock(side_effect=RuntimeError("secret connection string")),
        ):
            response = client.get(
                "/api/stats/top-api-keys", headers=ADMIN_HEADERS
            )

        assert response.status_code == 500
        assert response.json() == {"detail": "Failed to get top API keys"}
