"""Application settings and configuration.

This module defines all configuration options for the Stitch feed engine.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Stitch Feed", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Content store configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./stitch.db",
        alias="DATABASE_URL",
    )
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    # The document store rejects "in" filters with more values than this.
    store_in_filter_limit: int = Field(default=10, alias="STORE_IN_FILTER_LIMIT")
    gateway_fanout: int = Field(default=5, alias="GATEWAY_FANOUT")

    # Home feed
    feed_page_size: int = Field(default=40, alias="FEED_PAGE_SIZE")
    followers_per_batch: int = Field(default=15, alias="FOLLOWERS_PER_BATCH")
    max_cached_threads: int = Field(default=300, alias="MAX_CACHED_THREADS")
    following_cache_ttl_seconds: float = Field(
        default=300.0,
        alias="FOLLOWING_CACHE_TTL_SECONDS",
    )

    # Conversation lanes
    lane_message_cap: int = Field(default=20, alias="LANE_MESSAGE_CAP")
    lane_cache_ttl_seconds: float = Field(default=60.0, alias="LANE_CACHE_TTL_SECONDS")
    lane_exact_count: bool = Field(default=False, alias="LANE_EXACT_COUNT")
    lane_max_walk_depth: int = Field(default=64, alias="LANE_MAX_WALK_DEPTH")

    # Discovery categories
    discovery_category_ttl_seconds: float = Field(
        default=300.0,
        alias="DISCOVERY_CATEGORY_TTL_SECONDS",
    )
    discovery_fast_category_ttl_seconds: float = Field(
        default=120.0,
        alias="DISCOVERY_FAST_CATEGORY_TTL_SECONDS",
    )

    # User sessions
    session_idle_ttl_seconds: float = Field(default=1800.0, alias="SESSION_IDLE_TTL_SECONDS")
    max_sessions: int = Field(default=10_000, alias="MAX_SESSIONS")

    # View history
    view_history_max_ids: int = Field(default=500, alias="VIEW_HISTORY_MAX_IDS")
    view_history_recent_hours: float = Field(default=4.0, alias="VIEW_HISTORY_RECENT_HOURS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def lane_cache_ttl(self) -> float:
        """Return the lane cache TTL, never below one second."""
        return max(1.0, float(self.lane_cache_ttl_seconds))


settings = Settings()
