from datetime import UTC, datetime

from mongoengine import DateTimeField, StringField
from mongoengine_plus.aio import AsyncDocument
from mongoengine_plus.models import BaseModel, uuid_field
from mongoengine_plus.types import EnumField

from ..types import ApiEventIn, ApiKeySource


class ApiEvent(BaseModel, AsyncDocument):
    """One request reported by the chat client. Never updated in place."""

    meta = {
        "collection": "api_events",
        "indexes": [
            "handle",
            "timestamp",
            "path",
            "reverse_proxy",
            "chat_completion_source",
            ("-timestamp", "handle"),
            ("chat_completion_source", "-timestamp"),
            ("reverse_proxy", "-timestamp"),
        ],
    }

    # Stored names are camelCase, the aggregation pipelines refer to them
    id = StringField(primary_key=True, default=uuid_field("EV_"))
    handle = StringField(required=True)
    timestamp = DateTimeField(required=True)
    path = StringField(required=True)
    reverse_proxy = StringField(db_field="reverseProxy")
    proxy_password = StringField(db_field="proxyPassword")
    chat_completion_source = StringField(db_field="chatCompletionSource")
    api_key = StringField(db_field="apiKey")
    secret_key = StringField(db_field="secretKey")
    api_key_source = EnumField(ApiKeySource, db_field="apiKeySource")
    created_at = DateTimeField(
        db_field="createdAt", default=lambda: datetime.now(UTC)
    )

    @classmethod
    def from_payload(cls, payload: ApiEventIn) -> "ApiEvent":
        """Build an unsaved event from the validated client payload"""
        return cls(**payload.model_dump())
