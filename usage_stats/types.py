from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _as_utc(value: datetime) -> datetime:
    # The store hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]

RowT = TypeVar("RowT")


class ApiKeySource(str, Enum):
    """How the chat client obtained the credential it presented"""

    proxy_password = "proxy_password"
    secret_file = "secret_file"
    error = "error"


class FilterField(str, Enum):
    """Event fields a report may be narrowed by (stored names)"""

    handle = "handle"
    chat_completion_source = "chatCompletionSource"
    reverse_proxy = "reverseProxy"
    api_key_source = "apiKeySource"
    path = "path"


class TimelineInterval(str, Enum):
    """Bucket width for timeline reports"""

    minute = "minute"
    hour = "hour"
    day = "day"


class ExportFormat(str, Enum):
    json = "json"
    csv = "csv"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(BaseModel):
    message: str


class PaginationParams(BaseModel):
    """Pagination parameters for list endpoints"""

    page: int = Field(default=1, ge=1, description="Page number")
    limit: int = Field(default=20, ge=1, description="Items per page")

    @property
    def offset(self) -> int:
        """Calculate offset from page and limit"""
        return (self.page - 1) * self.limit


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class Page(CamelModel, Generic[RowT]):
    """A page of grouped report rows"""

    data: list[RowT]
    pagination: Pagination


class ApiEventIn(CamelModel):
    """Event posted by the chat client after each completion request"""

    handle: str = Field(min_length=1, description="End-user handle")
    timestamp: datetime = Field(description="When the request was made")
    path: str = Field(min_length=1, description="API route invoked")
    reverse_proxy: str | None = Field(
        default=None, description="Reverse proxy endpoint, if any"
    )
    proxy_password: str | None = None
    chat_completion_source: str | None = Field(
        default=None, description="Completion backend used"
    )
    api_key: str | None = Field(
        default=None, description="Credential presented"
    )
    secret_key: str | None = None
    api_key_source: ApiKeySource | None = None


class GroupCount(CamelModel):
    name: str | None = None
    count: int


class OverviewReport(CamelModel):
    total_requests: int
    unique_users: int
    top_sources: list[GroupCount]
    top_paths: list[GroupCount]


class HandleStats(CamelModel):
    handle: str
    total_requests: int
    last_activity: UtcDatetime | None = None
    sources: list[str | None] = Field(default_factory=list)
    paths: list[str] = Field(default_factory=list)


class ActivityStats(CamelModel):
    total_requests: int
    unique_users: int
    last_activity: UtcDatetime | None = None


class SourceStats(ActivityStats):
    source: str | None = None


class ProxyStats(ActivityStats):
    reverse_proxy: str


class TimelineBucket(CamelModel):
    bucket: str
    count: int
    unique_users: int


class ApiKeyUsage(CamelModel):
    """Usage of one credential by one handle/source/proxy combination"""

    api_key: str
    handle: str | None = None
    chat_completion_source: str | None = None
    reverse_proxy: str | None = None
    api_key_source: str | None = None
    first_used: UtcDatetime | None = None
    last_used: UtcDatetime | None = None
    total_usage: int = 0
    paths: list[str | None] = Field(default_factory=list)
    secret_keys: list[str | None] = Field(default_factory=list)


class ApiKeyFilters(CamelModel):
    filter_by: str | None = None
    filter_value: str | None = None
    start_date: str | None = None
    end_date: str | None = None


class ApiKeyUsagePage(Page[ApiKeyUsage]):
    filters: ApiKeyFilters


class ApiKeyStats(CamelModel):
    total_requests: int
    unique_handles: int
    unique_sources: int
    unique_proxies: int
    unique_paths: int
    first_used: UtcDatetime | None = None
    last_used: UtcDatetime | None = None
    api_key_source: str | None = None
    handles: list[str | None] = Field(default_factory=list)
    sources: list[str | None] = Field(default_factory=list)
    proxies: list[str | None] = Field(default_factory=list)
    paths: list[str | None] = Field(default_factory=list)


class ApiKeyDetails(CamelModel):
    api_key: str
    # Empty object when the key was never seen
    stats: ApiKeyStats | dict[str, Any]
    timeline: list[TimelineBucket]


class DuplicateApiKey(CamelModel):
    api_key: str
    handle_count: int
    source_count: int
    proxy_count: int
    handles: list[str | None]
    sources: list[str | None]
    proxies: list[str | None]
    total_usage: int
    first_seen: UtcDatetime | None = None
    last_seen: UtcDatetime | None = None


class TopApiKey(CamelModel):
    api_key: str
    total_usage: int
    unique_handles: int
    unique_sources: int
    last_used: UtcDatetime | None = None
    api_key_source: str | None = None
