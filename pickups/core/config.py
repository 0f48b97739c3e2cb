from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Pickups API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS. If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    # Bokun (HMAC-SHA1 signed REST API)
    BOKUN_HOST: str = "api.bokun.io"
    BOKUN_ACCESS_KEY: str = ""
    BOKUN_SECRET_KEY: str = ""
    BOKUN_TIMEOUT: int = 25
    BOKUN_PAGE_SIZE: int = 50
    BOKUN_MAX_RESULTS: int = 1000  # pagination safety cap

    # Pickup planning
    MAX_PASSENGERS_PER_BUS: int = 19
    RETENTION_DAYS: int = 30          # older dates are served from cache only
    CREATION_LOOKBACK_DAYS: int = 60  # creation-date fallback search horizon
    AUTO_CACHE_DAYS: int = 7          # recent dates written back to the booking cache
    SECONDARY_LOAD_TIMEOUT: float = 5.0

    @field_validator("MAX_PASSENGERS_PER_BUS", mode="after")
    @classmethod
    def positive_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_PASSENGERS_PER_BUS must be >= 1")
        return v


settings = Settings()
