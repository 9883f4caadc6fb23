"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Backend-specific requirements (e.g. DATABASE_URL for
postgres) are validated at load time.
"""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment and .env.

    All settings are optional with defaults; validate_backend enforces
    the database URL when a SQL backend is selected.
    """

    # App
    app_name: str = "crm-automation"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Database: "memory" (process-local stores), "postgres" or "sqlite" (SQLAlchemy async)
    database_backend: str = "memory"
    database_url: str = ""
    database_echo: bool = False
    # Create tables on startup (SQL backends only); production runs migrations instead.
    database_auto_create: bool = False
    # Optional pool/driver overrides (None = use defaults in database.py)
    db_pool_size: int | None = None
    db_max_overflow: int | None = None
    db_command_timeout: int | None = None

    # CORS
    allowed_origins: str = "http://localhost:3000,http://localhost:8080"

    # Tenant
    tenant_header_name: str = "X-Tenant-ID"

    # Request / middleware
    request_id_header: str = "X-Request-ID"
    correlation_id_header: str = "X-Correlation-ID"

    # Workflow engine
    # Seconds per unit of Action.delay (delays are authored in minutes).
    workflow_delay_unit_seconds: float = 60.0
    # Defaults applied when a workflow omits its limits block.
    workflow_default_max_executions_per_day: int = 1000
    workflow_default_max_executions_per_hour: int = 100
    workflow_default_execution_timeout_ms: int = 30_000
    # CRM collaborators: "memory" or a "package.module:callable" taking Settings.
    crm_lead_store: str = "memory"
    crm_task_service: str = "memory"
    crm_messaging_channel: str = "memory"
    # Entries kept by the in-memory task service and log-only channel.
    adapter_history_limit: int = 1000
    # Outbound webhook action
    webhook_timeout_seconds: float = 10.0
    webhook_user_agent: str = "crm-automation-webhook/1.0"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_backend(self) -> "Settings":
        """Validate database backend selection.

        - postgres / sqlite: DATABASE_URL required.
        - memory: DATABASE_URL ignored.
        """
        if self.database_backend in ("postgres", "sqlite"):
            if not self.database_url:
                raise ValueError(
                    f"DATABASE_URL is required when database_backend is '{self.database_backend}'. "
                    "Set in environment or .env file."
                )
        elif self.database_backend != "memory":
            raise ValueError(
                "database_backend must be 'memory', 'postgres' or 'sqlite', "
                f"got: {self.database_backend!r}"
            )
        if self.workflow_delay_unit_seconds < 0:
            raise ValueError("WORKFLOW_DELAY_UNIT_SECONDS must be non-negative")
        if self.adapter_history_limit < 1:
            raise ValueError("ADAPTER_HISTORY_LIMIT must be at least 1")
        return self

    @property
    def uses_sql(self) -> bool:
        """Return True when workflows are persisted through SQLAlchemy."""
        return self.database_backend in ("postgres", "sqlite")


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
