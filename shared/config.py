"""
Shared configuration management for the Access Layer.
"""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )
    
    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    
    # Policy
    policy_file: Optional[str] = Field(default=None)
    
    # Denial responses carry reason and required attributes outside production
    expose_denial_details: Optional[bool] = Field(default=None)

    @model_validator(mode="after")
    def _default_denial_details(self):
        if self.expose_denial_details is None:
            self.expose_denial_details = self.env.lower() != "production"
        return self

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""
    
    service_name: str
    
    def __init__(self, service_name: str, **kwargs):
        super().__init__(service_name=service_name, **kwargs)


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
