"""Application settings loaded from the environment."""

from decimal import Decimal
from typing import Literal, Optional

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "ServicePro"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "servicepro"
    # Full URL override, e.g. for SQLite in development
    DATABASE_URL: Optional[str] = None

    # Local mirror of remote records plus the offline outbox
    LOCAL_CACHE_URL: str = "sqlite:///./servicepro_cache.db"

    DEFAULT_VAT_RATE: Decimal = Decimal("0.15")
    DEFAULT_LABOR_RATE: Decimal = Decimal("150.00")
    LABOR_SHARE_OF_ESTIMATE: Decimal = Decimal("0.6")
    DEFAULT_DUE_DAYS: int = 30

    DOCUMENT_NUMBER_PAD: int = 4
    SEQUENCE_MAX_ATTEMPTS: int = 5

    ZATCA_QR_FORMAT: Literal["tlv", "json"] = "tlv"

    SYNC_INTERVAL_SECONDS: int = 0
    SYNC_BACKOFF_BASE_SECONDS: int = 30
    SYNC_BACKOFF_MAX_SECONDS: int = 3600
    SYNC_MAX_ATTEMPTS: int = 8

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()
