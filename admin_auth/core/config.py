"""
Configuration management for admin_auth
Uses pydantic-settings for environment variable loading and validation
"""

from functools import lru_cache
from typing import Annotated, List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "admin_auth"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # API
    API_V1_PREFIX: str = "/v1"

    # Database
    DATABASE_URL: str = Field(default="sqlite:///./admin_auth.db")
    DATABASE_POOL_SIZE: int = Field(default=20)
    DATABASE_MAX_OVERFLOW: int = Field(default=10)
    DATABASE_POOL_TIMEOUT: int = Field(default=30)

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    REDIS_POOL_SIZE: int = Field(default=50)

    # Admin sessions
    ADMIN_SESSION_DURATION_MINUTES: int = Field(default=240)
    ADMIN_ACTIVITY_REFRESH_SECONDS: int = Field(default=300)

    # Admin key
    ADMIN_MAX_ATTEMPTS: int = Field(default=5)
    ADMIN_KEY_BCRYPT_COST: int = Field(default=12)

    # MFA step-up
    ADMIN_TEMP_TOKEN_TTL_MINUTES: int = Field(default=10)
    ADMIN_MFA_STORE: str = Field(default="memory")  # 'memory' or 'redis'
    ADMIN_MFA_TOTP_SECRET: Optional[str] = Field(default=None)

    # IP policy
    IP_CACHE_TTL_SECONDS: int = Field(default=300)
    HIGH_RISK_COUNTRIES: Annotated[List[str], NoDecode] = Field(default=["XX", "YY", "ZZ"])

    # Risk scoring
    BUSINESS_HOURS_START: int = Field(default=9)
    BUSINESS_HOURS_END: int = Field(default=18)
    BUSINESS_TIMEZONE: str = Field(default="UTC")
    MAX_TRAVEL_SPEED_KMH: float = Field(default=1000.0)
    RISK_HISTORY_DAYS: int = Field(default=30)
    RISK_HISTORY_LIMIT: int = Field(default=20)
    RISK_STEP_UP_THRESHOLD: int = Field(default=40)
    RISK_DENY_THRESHOLD: int = Field(default=70)
    HIGH_FREQUENCY_SESSION_COUNT: int = Field(default=10)

    # Housekeeping
    CLEANUP_WORKER_ENABLED: bool = Field(default=True)
    CLEANUP_INTERVAL_SECONDS: int = Field(default=300)

    # CORS
    CORS_ALLOWED_ORIGINS: Annotated[List[str], NoDecode] = Field(default=["http://localhost:3000"])
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)

    # Logging & Observability
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # 'json' or 'text'

    @field_validator("CORS_ALLOWED_ORIGINS", "HIGH_RISK_COUNTRIES", mode="before")
    @classmethod
    def parse_comma_list(cls, v):
        """Parse comma-separated string to list"""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("HIGH_RISK_COUNTRIES")
    @classmethod
    def upper_country_codes(cls, v: List[str]) -> List[str]:
        return [code.upper() for code in v]

    @field_validator("ADMIN_MFA_STORE")
    @classmethod
    def validate_mfa_store(cls, v: str) -> str:
        """Validate temporary token store backend"""
        allowed = ["memory", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"ADMIN_MFA_STORE must be one of {allowed}")
        return v.lower()

    @field_validator("BUSINESS_HOURS_START", "BUSINESS_HOURS_END")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"Business hour must be between 0 and 23, got {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level"""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v.upper()

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        allowed = ["json", "text"]
        if v.lower() not in allowed:
            raise ValueError(f"LOG_FORMAT must be one of {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
