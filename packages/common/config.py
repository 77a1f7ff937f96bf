"""
Application configuration using Pydantic Settings
Reads from environment variables and .env file
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    db_user: str = Field(default="basket_filter", alias="DB_USER")
    db_password: str = Field(default="basket_filter", alias="DB_PASSWORD")
    db_name: str = Field(default="basket_filter", alias="DB_NAME")
    db_host: str = Field(default="postgres", alias="DB_HOST")
    db_port: int = Field(default=5432, alias="DB_PORT")

    @property
    def database_url(self) -> str:
        """Construct database URL"""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Redis / Celery
    redis_url: str = Field(default="redis://redis:6379/0", alias="REDIS_URL")
    celery_broker_url: str = Field(default="redis://redis:6379/1", alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(default="redis://redis:6379/2", alias="CELERY_RESULT_BACKEND")

    # Application
    environment: str = Field(default="production", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Caching (L1 = in-process, L2 = Redis)
    enable_caching: bool = Field(default=True, alias="ENABLE_CACHING")
    use_redis: bool = Field(default=True, alias="CACHE_USE_REDIS")
    cache_instance_name: str = Field(default="basket-filter-cache", alias="CACHE_INSTANCE_NAME")
    cache_max_size_mb: int = Field(default=100, alias="CACHE_MAX_SIZE_MB")
    cache_default_ttl_seconds: int = Field(default=30 * 60, alias="CACHE_DEFAULT_TTL_SECONDS")
    cache_catalog_ttl_seconds: int = Field(default=2 * 3600, alias="CACHE_CATALOG_TTL_SECONDS")
    cache_ai_ttl_seconds: int = Field(default=24 * 3600, alias="CACHE_AI_TTL_SECONDS")
    redis_default_ttl_seconds: int = Field(default=3600, alias="REDIS_DEFAULT_TTL_SECONDS")
    redis_catalog_ttl_seconds: int = Field(default=6 * 3600, alias="REDIS_CATALOG_TTL_SECONDS")
    redis_ai_ttl_seconds: int = Field(default=48 * 3600, alias="REDIS_AI_TTL_SECONDS")

    # AI classification (Anthropic Claude)
    enable_ai_classification: bool = Field(default=True, alias="ENABLE_AI_CLASSIFICATION")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    ai_model: str = Field(default="claude-sonnet-4-20250514", alias="AI_MODEL")
    ai_max_tokens: int = Field(default=1000, alias="AI_MAX_TOKENS")
    ai_temperature: float = Field(default=0.1, alias="AI_TEMPERATURE")
    ai_max_retries: int = Field(default=3, alias="AI_MAX_RETRIES")
    ai_timeout_seconds: float = Field(default=30.0, alias="AI_TIMEOUT_SECONDS")
    ai_confidence_threshold: float = Field(default=0.7, alias="AI_CONFIDENCE_THRESHOLD")

    # Merchant rules
    merchant_rules_ttl_seconds: int = Field(default=15 * 60, alias="MERCHANT_RULES_TTL_SECONDS")
    default_rules_ttl_seconds: int = Field(default=5 * 60, alias="DEFAULT_RULES_TTL_SECONDS")

    # Audit
    audit_enabled: bool = Field(default=True, alias="AUDIT_ENABLED")

    # Monitoring
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")

    # Development
    debug: bool = Field(default=False, alias="DEBUG")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment"""
        valid_envs = ["development", "staging", "production", "test"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT must be one of {valid_envs}")
        return v.lower()

    @field_validator("ai_temperature")
    @classmethod
    def validate_temperature(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("AI_TEMPERATURE must be between 0.0 and 1.0")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
