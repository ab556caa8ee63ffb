"""
Name: Application Configuration (Settings)

Responsibilities:
  - Centralized, typed configuration using pydantic-settings
  - Validate environment variables at startup
  - Provide defaults that match current behavior

Collaborators:
  - infrastructure/db/pool.py: reads pool bounds and statement timeout
  - infrastructure/db/store.py: reads bindtype and slow query threshold
  - infrastructure/repositories: read find_max_limit and default_timezone
  - crosscutting/logger.py: reads log_level / log_json

Constraints:
  - No business logic, pure configuration

Notes:
  - Uses pydantic-settings for env parsing and validation
  - Singleton via lru_cache for performance
"""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_BINDTYPES = {"question", "dollar", "named", "at", "format"}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        database_url: PostgreSQL connection string
        db_pool_min_size: Minimum pooled connections (default: 2)
        db_pool_max_size: Maximum pooled connections (default: 10)
        db_statement_timeout_ms: statement_timeout per connection (default: 30s)
        db_slow_query_seconds: Slow statement warning threshold (default: 0.25)
        db_bindtype: Placeholder convention for rebinding (default: format)
        find_max_limit: Upper clamp for Find limits (default: 1000)
        default_timezone: Timezone for new accounts/users (default: America/Anchorage)
        log_level: Logger level (default: INFO)
        log_json: Emit JSON logs (default: True)
    """

    # Required (no defaults)
    database_url: str = ""

    # Database - Connection Pool
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    db_statement_timeout_ms: int = 30000  # 30 seconds
    db_slow_query_seconds: float = 0.25
    db_bindtype: str = "format"  # R: psycopg usa %s

    # Data access
    find_max_limit: int = 1000
    default_timezone: str = "America/Anchorage"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("db_bindtype")
    @classmethod
    def db_bindtype_valid(cls, v: str) -> str:
        bindtype = (v or "format").strip().lower()
        if bindtype not in _BINDTYPES:
            raise ValueError(
                f"db_bindtype must be one of {', '.join(sorted(_BINDTYPES))}"
            )
        return bindtype

    @field_validator("find_max_limit", "db_pool_min_size", "db_pool_max_size")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator("db_statement_timeout_ms")
    @classmethod
    def timeout_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("db_statement_timeout_ms must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_pool_bounds(self):
        if self.db_pool_min_size > self.db_pool_max_size:
            raise ValueError(
                f"db_pool_min_size ({self.db_pool_min_size}) must be <= "
                f"db_pool_max_size ({self.db_pool_max_size})"
            )
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get singleton Settings instance.

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()
