# campusgrub/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Order service settings, read from the environment or `.env`.

    Must be set:
      - SUPABASE_URL, SUPABASE_KEY (anon key)
      - DATABASE_URL (Supabase Postgres, or sqlite:/// for local runs)
      - SUPABASE_JWT_SECRET (verifies student/vendor/admin access tokens)

    Ordering rules (DELIVERY_FEE, DEFAULT_ESTIMATED_DELIVERY_TIME,
    STALE_ORDER_THRESHOLD_HOURS) default to the values the apps ship with.

    REALTIME_BRIDGE_ENABLED forwards Supabase postgres_changes on
    public.orders into the in-process hub, using SUPABASE_SERVICE_ROLE_KEY
    when set.
    """

    PROJECT_NAME: str = "CampusGrub Orders API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Supabase / DB config
    SUPABASE_URL: str
    SUPABASE_KEY: str
    DATABASE_URL: str

    # JWT verification (backend-side)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    # Service role key bypasses RLS (backend only)
    SUPABASE_SERVICE_ROLE_KEY: str | None = None

    # Ordering rules
    DELIVERY_FEE: float = 30.0
    DEFAULT_ESTIMATED_DELIVERY_TIME: str = "30-45 min"
    STALE_ORDER_THRESHOLD_HOURS: float = 2

    # Realtime
    REALTIME_BRIDGE_ENABLED: bool = False

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8080",
        "capacitor://localhost",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Process-wide Settings; routers, services and the reaper script share it.
    """
    return Settings()
