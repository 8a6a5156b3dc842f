"""
Shared configuration management for the Relay Access service.
"""

from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SOURCE_URLS: Dict[str, str] = {
    "jin18": "https://raw.githubusercontent.com/zhiim/moontv_api/main/jin18.json",
    "jingjian": "https://raw.githubusercontent.com/zhiim/moontv_api/main/jingjian.json",
    "full": "https://raw.githubusercontent.com/zhiim/moontv_api/main/LunaTV-config.json",
}


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    log_format: str = Field(default="json", pattern="^(json|console)$")

    # Configuration sources
    source_mode: str = Field(default="remote", pattern="^(remote|local)$")
    source_dir: str = "./data"
    source_urls: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_SOURCE_URLS))
    default_source: str = "full"
    source_timeout_seconds: float = 10.0
    cache_ttl_seconds: int = 600
    user_agent: str = "Relay Access Proxy"

    # Proxy mode
    proxy_timeout_seconds: float = 9.0
    block_private_targets: bool = True
    max_body_bytes: int = 100 * 1024 * 1024


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 3000
    host: str = "0.0.0.0"


def get_config(service_name: str, port: Optional[int] = None, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    if port is not None:
        overrides["port"] = port
    return ServiceConfig(service_name=service_name, **overrides)
