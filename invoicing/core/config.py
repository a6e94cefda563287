from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator


class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'invoicing_user'
    POSTGRES_PASSWORD: str = 'invoicing_pass'
    POSTGRES_DB: str = 'invoicing_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Overrides the composed asyncpg URL

    # Multi-tenancy
    TENANT_HEADER: str = 'X-Workspace-ID'

    # Pagination
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Invoice numbering
    NUMBER_ALLOCATION_MAX_ATTEMPTS: int = 5
    NUMBER_ALLOCATION_BACKOFF_SECONDS: float = 0.05

    # Money
    CURRENCY_DECIMAL_PLACES: int = 2

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def async_database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("NUMBER_ALLOCATION_MAX_ATTEMPTS")
    @classmethod
    def validate_attempts(cls, v):
        if v < 1:
            raise ValueError("NUMBER_ALLOCATION_MAX_ATTEMPTS must be at least 1")
        return v


settings = Settings()
