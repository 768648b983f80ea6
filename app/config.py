from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Supabase settings
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    SUPABASE_DB_URL: str
    SUPABASE_JWKS_URL: str | None = None

    # Result cache (disabled when unset)
    REDIS_URL: str | None = None

    # =================================================================
    # DATABASE POOL SETTINGS - identity lookups only, keep it small
    # =================================================================
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 8
    DB_POOL_TIMEOUT: float = 30.0
    DB_POOL_MAX_IDLE: float = 600.0  # 10 minutes
    DB_POOL_MAX_LIFETIME: float = 3600.0  # 1 hour

    # =================================================================
    # DASHBOARD ENGINE
    # =================================================================
    DASHBOARD_DEBOUNCE_MS: int = 300
    DASHBOARD_MAX_RETRIES: int = 2
    DASHBOARD_RETRY_BASE_DELAY_S: float = 1.0
    DASHBOARD_RETRY_MAX_DELAY_S: float = 30.0
    DASHBOARD_FETCH_TIMEOUT_S: float = 30.0
    DASHBOARD_STALE_TIME_S: int = 300  # 5 minutes
    DASHBOARD_BUSINESS_TIMEZONE: str = "UTC"
    # Trust KPIs from the get-dashboard-metrics edge function instead of aggregating locally
    DASHBOARD_SERVER_METRICS: bool = False
    DASHBOARD_PAGE_SIZE_MAX: int = 1000

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # derive sensible defaults if not provided
    def jwks_url(self) -> str:
        if self.SUPABASE_JWKS_URL:
            return self.SUPABASE_JWKS_URL
        base = self.SUPABASE_URL.rstrip("/")
        return f"{base}/auth/v1/.well-known/jwks.json"

    def dashboard_timezone(self) -> ZoneInfo:
        """
        Business calendar used for day boundaries and the default week.

        Raises:
            ConfigurationError: If DASHBOARD_BUSINESS_TIMEZONE is not a known IANA zone
        """
        from app.features.appointment_dashboard.domain.errors import ConfigurationError

        try:
            return ZoneInfo(self.DASHBOARD_BUSINESS_TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(
                f"Unknown business timezone: {self.DASHBOARD_BUSINESS_TIMEZONE}",
                operation="dashboard_timezone",
            ) from e

    def debounce_seconds(self) -> float:
        return self.DASHBOARD_DEBOUNCE_MS / 1000

    def get_db_pool_config(self) -> dict:
        """
        Get database pool configuration.
        Adjust environment-specific settings based on self.environment.
        """
        config = {
            "min_size": self.DB_POOL_MIN_SIZE,
            "max_size": self.DB_POOL_MAX_SIZE,
            "timeout": self.DB_POOL_TIMEOUT,
            "max_idle": self.DB_POOL_MAX_IDLE,
            "max_lifetime": self.DB_POOL_MAX_LIFETIME,
        }

        if self.environment == "development":
            # Local Supabase only needs a couple of connections
            config.update({"min_size": 1, "max_size": 4, "timeout": 15.0})

        return config


settings = Settings()
