"""Pipeline engine configuration management."""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline engine settings with environment variable support."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    # Backend API Configuration
    api_base_url: str = Field(
        default="http://localhost:8000/api/v1",
        description="Root URL of the recruitment REST API"
    )
    api_token: Optional[str] = Field(default=None, description="Bearer token for the REST API")
    request_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Upper bound for a single backend call before it counts as failed"
    )
    
    # Bulk Operation Configuration
    bulk_max_concurrency: int = Field(
        default=10,
        ge=1,
        description="Maximum per-item requests in flight for one bulk operation"
    )
    
    # Application Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    environment: str = Field(default="development", description="Environment name")
    
    @property
    def api_root(self) -> str:
        """API base URL without a trailing slash."""
        return self.api_base_url.rstrip("/")


# Global settings instance
settings = Settings()
