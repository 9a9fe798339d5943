from typing import Any

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Gateway configuration loaded from environment variables and `.env`.
    """

    # API Configuration
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "MediConnect API Gateway"
    PROJECT_DESCRIPTION: str = "Authenticated entry point to the MediConnect backend services"
    SERVICE_NAME: str = Field("api-gateway", description="Name reported in logs and health payloads")
    VERSION: str = Field("1.0.0", validation_alias="APP_VERSION", description="Release version")

    # Runtime
    ENVIRONMENT: str = Field("development", description="development, test, staging or production")
    DEBUG: bool = Field(False, description="Enable debug mode (docs endpoints, verbose errors)")
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    LOG_FORMAT: str = Field("json", description="Log format: json, colored or plain")
    SENTRY_DSN: str | None = Field(None, description="Sentry DSN, error tracking disabled when empty")
    CORS_ORIGINS: str = Field("*", description="Comma separated list of allowed CORS origins")

    # Cache Settings
    CACHE_BACKEND: str = Field("redis", description="Shared state backend: redis or memory")
    REDIS_URL: str | None = Field(None, description="Full Redis URL, overrides host/port/db")
    REDIS_HOST: str = Field("localhost", description="Redis host")
    REDIS_PORT: int = Field(6379, description="Redis port")
    REDIS_DB: int = Field(0, description="Redis database")
    REDIS_PASSWORD: str | None = Field(None, description="Redis password")
    REDIS_SOCKET_TIMEOUT: float = Field(1.0, description="Redis socket timeout in seconds")

    # JWT Settings
    JWT_SECRET: str = Field(..., description="Secret used to sign gateway tokens")
    JWT_ALGORITHM: str = Field("HS256", description="JWT signing algorithm")
    JWT_EXPIRATION: int = Field(86400, description="Access token lifetime in seconds")
    JWT_REFRESH_EXPIRATION: int = Field(604800, description="Refresh token lifetime in seconds")
    REVOKE_ON_REFRESH: bool = Field(True, description="Revoke the old refresh token when refreshing")

    # Downstream services
    USERS_SERVICE_URL: str = Field("http://users-service:3001", description="Users service base URL")
    DOCTORS_SERVICE_URL: str = Field("http://doctors-service:3002", description="Doctors service base URL")
    APPOINTMENTS_SERVICE_URL: str = Field(
        "http://appointments-service:3003", description="Appointments service base URL"
    )
    NOTIFICATIONS_SERVICE_URL: str = Field(
        "http://notifications-service:3004", description="Notifications service base URL"
    )
    PAYMENTS_SERVICE_URL: str = Field("http://payments-service:3005", description="Payments service base URL")

    # HTTP client
    HTTP_CLIENT_TIMEOUT: float = Field(10.0, description="Total request timeout in seconds")
    HTTP_CLIENT_OPEN_TIMEOUT: float = Field(5.0, description="Connection timeout in seconds")
    HTTP_CLIENT_MAX_RETRIES: int = Field(3, description="Retries after the first attempt")
    HTTP_CLIENT_RETRY_INTERVAL: float = Field(0.5, description="Base delay before the first retry")
    HTTP_CLIENT_BACKOFF_FACTOR: float = Field(2.0, description="Multiplier applied to each further retry")
    HTTP_CLIENT_RETRY_RANDOMNESS: float = Field(0.5, description="Random jitter as a fraction of the interval")

    # Circuit breaker
    CIRCUIT_FAILURE_THRESHOLD: int = Field(5, description="Failures before the circuit opens")
    CIRCUIT_SUCCESS_THRESHOLD: int = Field(2, description="Half-open successes before the circuit closes")
    CIRCUIT_OPEN_TIMEOUT: int = Field(30, description="Seconds an open circuit waits before half-opening")
    CIRCUIT_FAILURE_WINDOW: int = Field(60, description="Seconds the failure counter is kept")

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = Field(True, description="Enable request throttling and blocklists")
    RATE_LIMIT_REQUESTS_PER_MINUTE: int = Field(100, description="Unauthenticated requests per IP per minute")
    RATE_LIMIT_AUTHENTICATED_REQUESTS_PER_MINUTE: int = Field(
        1000, description="Authenticated requests per user per minute"
    )

    # Health checks
    HEALTH_CHECK_TIMEOUT: float = Field(5.0, description="Timeout for a single health probe in seconds")

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def __init__(self, **data: Any):
        super().__init__(**data)

    @field_validator("CACHE_BACKEND")
    @classmethod
    def validate_cache_backend(cls, v):
        if v not in ("redis", "memory"):
            raise ValueError("CACHE_BACKEND must be 'redis' or 'memory'")
        return v

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "colored", "plain"):
            raise ValueError("LOG_FORMAT must be 'json', 'colored' or 'plain'")
        return v

    @field_validator(
        "CIRCUIT_FAILURE_THRESHOLD",
        "CIRCUIT_SUCCESS_THRESHOLD",
        "CIRCUIT_OPEN_TIMEOUT",
        "CIRCUIT_FAILURE_WINDOW",
        "RATE_LIMIT_REQUESTS_PER_MINUTE",
        "RATE_LIMIT_AUTHENTICATED_REQUESTS_PER_MINUTE",
        "JWT_EXPIRATION",
        "JWT_REFRESH_EXPIRATION",
    )
    @classmethod
    def validate_positive(cls, v, info):
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @field_validator("HTTP_CLIENT_MAX_RETRIES")
    @classmethod
    def validate_max_retries(cls, v):
        if v < 0:
            raise ValueError("HTTP_CLIENT_MAX_RETRIES must be 0 or greater")
        if v > 10:
            raise ValueError("HTTP_CLIENT_MAX_RETRIES should not exceed 10")
        return v

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        if self.REDIS_URL:
            return self.REDIS_URL
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @computed_field
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() in ["development", "dev", "local"]

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in ["production", "prod"]


# Cached settings singleton
_settings_instance = None


def get_settings() -> Settings:
    """
    Return the cached settings instance.

    Environment variables are read only once per process.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
