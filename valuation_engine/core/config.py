import os
from pydantic import BaseModel

class Settings(BaseModel):
    # Basic
    ENV: str = os.getenv("ENV", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "43200"))

    # Comparable-sales provider
    COMPS_PROVIDER: str = os.getenv("COMPS_PROVIDER", "none")      # none | http
    COMPS_BASE_URL: str | None = os.getenv("COMPS_BASE_URL")
    COMPS_API_KEY: str | None = os.getenv("COMPS_API_KEY")
    COMPS_TIMEOUT_SECONDS: float = float(os.getenv("COMPS_TIMEOUT_SECONDS", "8"))

    # Narrative provider
    NARRATIVE_PROVIDER: str = os.getenv("NARRATIVE_PROVIDER", "rules")  # rules | openai
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    NARRATIVE_TIMEOUT_SECONDS: float = float(os.getenv("NARRATIVE_TIMEOUT_SECONDS", "15"))

    # Overall budget for one valuation; keep above the two provider timeouts
    VALUATION_TIMEOUT_SECONDS: float = float(os.getenv("VALUATION_TIMEOUT_SECONDS", "45"))

    # Persistence
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./valuations.db")

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Cache
    USE_REDIS: bool = os.getenv("USE_REDIS", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Metrics
    PROMETHEUS_ENABLED: bool = os.getenv("PROMETHEUS_ENABLED", "true").lower() == "true"

settings = Settings()
