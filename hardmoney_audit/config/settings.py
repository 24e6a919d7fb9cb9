from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field

load_dotenv()


class Settings(BaseSettings):
    """Base settings for the audit service."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    APP_NAME: str = "Hard Money Audit Ledger"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Audit trail service for the hard-money lending marketplace"

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    DATABASE_URL: str = ""
    LOCAL_SQLITE_PATH: str = "sqlite+aiosqlite:///./local.db"

    SUPABASE_DATABASE_NAME: str = "postgres"
    SUPABASE_DATABASE_USER: str = "postgres"
    SUPABASE_DATABASE_PASSWORD: str = ""
    SUPABASE_DATABASE_HOST: str = ""
    SUPABASE_DATABASE_PORT: int = 5432

    # Supabase settings
    SUPABASE_URL: str = Field(default="", description="Supabase project URL (https://xxx.supabase.co)")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(default="", description="Supabase service role key (for admin operations)")

    # Bearer token verification (tokens are issued by the hosted auth provider)
    LOCAL_AUTH_SECRET: str = "JWT_SECRET_KEY"
    LOCAL_AUTH_TOKEN_EXP_SECONDS: int = 3600

    # Audit ledger settings
    AUDIT_MAX_EVENTS: int = Field(default=10000, ge=1, description="Events retained in memory before the oldest is evicted")
    AUDIT_STRICT_ACTIONS: bool = Field(default=False, description="Reject actions outside the AuditAction vocabulary")

    # Delivery to the external collector
    AUDIT_COLLECTOR_URL: str = Field(default="http://localhost:8000/api/audit", description="Empty string disables delivery")
    AUDIT_DELIVERY_QUEUE_SIZE: int = Field(default=1000, ge=1)
    AUDIT_DELIVERY_TIMEOUT_SECONDS: float = 5.0

    # Collector persistence
    AUDIT_STORE_BACKEND: str = Field(default="", description="'supabase', 'sql' or empty for auto-detection")
    AUDIT_SUPABASE_TABLE: str = "audit_events"

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """Resolve the database URL for the SQL audit store.

        Priority:
        1. Explicit DATABASE_URL (Postgres, SQLite, etc.)
        2. Supabase Postgres URL built from SUPABASE_* components
        3. Local SQLite fallback for development: LOCAL_SQLITE_PATH
        """
        if self.DATABASE_URL and self.DATABASE_URL.strip():
            return self.DATABASE_URL.strip()
        if self.SUPABASE_DATABASE_HOST and self.SUPABASE_DATABASE_HOST.strip() and self.SUPABASE_DATABASE_PASSWORD and self.SUPABASE_DATABASE_PASSWORD.strip():
            return (
                f"postgresql://{self.SUPABASE_DATABASE_USER}:{self.SUPABASE_DATABASE_PASSWORD}@"
                f"{self.SUPABASE_DATABASE_HOST}:{self.SUPABASE_DATABASE_PORT}/{self.SUPABASE_DATABASE_NAME}?sslmode=require"
            )
        if self.LOCAL_SQLITE_PATH and self.LOCAL_SQLITE_PATH.strip():
            return self.LOCAL_SQLITE_PATH.strip()
        return "sqlite+aiosqlite:///./local.db"

    @computed_field
    @property
    def effective_store_backend(self) -> str:
        """Pick the collector persistence backend.

        Supabase REST when the service-role credentials are configured,
        otherwise the SQL database.
        """
        forced = (self.AUDIT_STORE_BACKEND or "").strip().lower()
        if forced in ("supabase", "sql"):
            return forced
        if self.SUPABASE_URL.strip() and self.SUPABASE_SERVICE_ROLE_KEY.strip():
            return "supabase"
        return "sql"


settings = Settings()
