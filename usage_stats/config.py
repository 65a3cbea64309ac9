from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(
        default="Usage Stats", description="Application name"
    )
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    env: str = Field(default="development", description="Environment")

    # CORS settings
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Allowed CORS origins",
    )
    cors_allow_credentials: bool = Field(
        default=True, description="Allow credentials in CORS requests"
    )
    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["*"], description="Allowed CORS methods"
    )

    # Database
    mongodb_url: str | None = Field(
        default=None, description="MongoDB connection URL"
    )
    mongodb_server_selection_timeout_ms: int = Field(
        default=5000,
        description="How long the driver waits for a reachable server",
    )

    # Bearer tokens
    ingest_api_key: str = Field(
        default="",
        description="Token the chat client presents when posting events",
    )
    admin_token: str = Field(
        default="", description="Token required to read the reports"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.env.lower() in ("development", "dev")

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.env.lower() in ("production", "prod")


# Global configuration instance
config = Config()
