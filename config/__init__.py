"""Configuration management for the LLM relay.

This module handles all configuration loading and validation using Pydantic BaseSettings.
Configuration is loaded from environment variables and .env files.
"""

from .config import (
    ApplicationConfig,
    ServerConfig,
    RedisConfig,
    ProviderConfig,
    QuotaConfig,
    MonitoringConfig,
    SecurityConfig,
    build_base_url,
    split_csv,
    str_to_bool,
)


def load_config() -> ApplicationConfig:
    """Load and validate application configuration."""
    return ApplicationConfig()


__all__ = [
    "ApplicationConfig",
    "ServerConfig",
    "RedisConfig",
    "ProviderConfig",
    "QuotaConfig",
    "MonitoringConfig",
    "SecurityConfig",
    "build_base_url",
    "load_config",
    "split_csv",
    "str_to_bool",
]
