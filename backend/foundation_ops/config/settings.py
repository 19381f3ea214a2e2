"""Application Settings - Environment and .env driven configuration"""
from functools import lru_cache
from typing import List, Optional
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "change-me"


class Settings(BaseSettings):
    """Every field can be set through the environment variable of the same name"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "foundation_ops_dev"

    # Identity provider tokens (HS256); the role claim is taken as given
    jwt_secret: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None

    # JSON file of {role: [screens]}; unset means the built-in grants
    permission_table_file: Optional[str] = None

    # Document generation and signature provider services
    document_service_url: str = "http://localhost:8081"
    signature_provider_url: str = "http://localhost:8082"
    external_timeout_seconds: float = 15.0

    logs_path: str = "./logs"
    log_level: str = "INFO"

    # Comma separated, or "*"
    cors_origins: str = "*"

    # Outbox processing
    scheduler_enabled: bool = True
    scheduler_interval_seconds: int = 10
    side_effect_lock_duration_seconds: int = 60
    side_effect_max_attempts: int = 5
    stale_lock_cleanup_minutes: int = 10

    environment: str = "development"
    debug: bool = True

    @field_validator("log_level")
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level {value!r}")
        return level

    @model_validator(mode="after")
    def _no_dev_secret_in_production(self) -> "Settings":
        if self.is_production and self.jwt_secret == DEV_JWT_SECRET:
            raise ValueError("JWT_SECRET must be set in production")
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
