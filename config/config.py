"""Configuration classes for the LLM relay.

This module contains all configuration classes organized by domain.
Configuration is loaded from environment variables and .env files.
"""

from typing import Any, List, Optional, Set
import hashlib

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def str_to_bool(value: Any) -> bool:
    """Convert various string representations to boolean values.

    Args:
        value: The value to convert. Can be bool, str, int, or any other type.

    Returns:
        bool: The converted boolean value.

    Examples:
        >>> str_to_bool("true")
        True
        >>> str_to_bool("0")
        False
        >>> str_to_bool("yes")
        True
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on", "enabled")
    if isinstance(value, int):
        return bool(value)
    return bool(value)


def split_csv(value: str) -> List[str]:
    """Split a comma separated environment value, dropping blanks."""
    return [item.strip() for item in value.split(",") if item.strip()]


def build_base_url(base_url: str, protocol: str) -> str:
    """Prefix a bare host with the configured protocol."""
    base_url = base_url.strip().rstrip("/")
    if not base_url.startswith("http"):
        base_url = f"{protocol}://{base_url}"
    return base_url


class ServerConfig(BaseSettings):
    """Server configuration settings."""

    # Application metadata
    app_name: str = "LLM Relay"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server configuration
    server_port: int = Field(default=8080, alias="SERVER_PORT")
    server_host: str = Field(default="0.0.0.0", alias="SERVER_HOST")


class RedisConfig(BaseSettings):
    """Redis configuration settings."""

    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_password: Optional[str] = Field(default=None, alias="REDIS_PASSWORD")
    redis_db: int = Field(default=0, alias="REDIS_DB")
    redis_socket_timeout: int = 30
    redis_retry_on_timeout: bool = True
    redis_max_connections: int = 10

    # Entitlement storage
    entitlement_backend: str = Field(default="redis", alias="ENTITLEMENT_BACKEND")
    points_hash: str = "USER_COUNT"
    tier_hash: str = "USER_TYPE"
    standard_pass_prefix: str = "USER_DAYS:"
    plus_pass_prefix: str = "USER_DAYSPLUS:"

    @field_validator("entitlement_backend")
    @classmethod
    def validate_entitlement_backend(cls, v: str) -> str:
        """Only redis and in-process storage are supported."""
        v = v.lower()
        if v not in ("redis", "memory"):
            raise ValueError("entitlement_backend must be one of: ['redis', 'memory']")
        return v


class ProviderConfig(BaseSettings):
    """Upstream vendor endpoints and credentials."""

    openai_base_url: str = Field(default="api.openai.com", alias="OPENAI_BASE_URL")
    openai_protocol: str = Field(default="https", alias="OPENAI_PROTOCOL")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_org_id: str = Field(default="", alias="OPENAI_ORG_ID")

    claude_base_url: str = Field(default="api.anthropic.com", alias="CLAUDE_BASE_URL")
    claude_protocol: str = Field(default="https", alias="CLAUDE_PROTOCOL")
    claude_api_key: str = Field(default="", alias="CLAUDE_API_KEY")
    claude_version: str = Field(default="2023-06-01", alias="CLAUDE_VERSION")
    claude_default_max_tokens: int = 1024

    gemini_base_url: str = Field(
        default="generativelanguage.googleapis.com", alias="GEMINI_BASE_URL"
    )
    gemini_protocol: str = Field(default="https", alias="GEMINI_PROTOCOL")
    gemini_api_key: str = Field(default="", alias="GEMINI_API_KEY")
    gemini_stream_format: str = Field(default="sse", alias="GEMINI_STREAM_FORMAT")

    upstream_connect_timeout: float = Field(default=60.0, alias="UPSTREAM_CONNECT_TIMEOUT")
    upstream_read_timeout: float = Field(default=60.0, alias="UPSTREAM_READ_TIMEOUT")

    @field_validator("openai_protocol", "claude_protocol", "gemini_protocol")
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        """Ensure the protocol override is http or https."""
        v = v.lower().rstrip(":/")
        if v not in ("http", "https"):
            raise ValueError("protocol must be http or https")
        return v

    @field_validator("gemini_stream_format")
    @classmethod
    def validate_gemini_stream_format(cls, v: str) -> str:
        """Gemini streams either as SSE or as one chunked JSON array."""
        v = v.lower()
        if v not in ("sse", "json_array"):
            raise ValueError("gemini_stream_format must be one of: ['sse', 'json_array']")
        return v

    @property
    def openai_url(self) -> str:
        return build_base_url(self.openai_base_url, self.openai_protocol)

    @property
    def claude_url(self) -> str:
        return build_base_url(self.claude_base_url, self.claude_protocol)

    @property
    def gemini_url(self) -> str:
        return build_base_url(self.gemini_base_url, self.gemini_protocol)


class QuotaConfig(BaseSettings):
    """Point pricing and grants."""

    premium_decrement: int = Field(default=20, ge=0, alias="DEC_GPT4_USER_COUNT")
    standard_decrement: int = Field(default=1, ge=0, alias="DEC_USER_COUNT")
    initial_points: int = Field(default=100, ge=0, alias="INIT_USER_COUNT")
    premium_model_prefixes_raw: str = Field(default="gpt-4", alias="PREMIUM_MODEL_PREFIXES")

    @property
    def premium_model_prefixes(self) -> List[str]:
        return split_csv(self.premium_model_prefixes_raw)


class MonitoringConfig(BaseSettings):
    """Monitoring configuration settings."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_json", mode="before")
    @classmethod
    def validate_log_json(cls, v) -> bool:
        """Convert string boolean values to actual boolean."""
        return str_to_bool(v)


class SecurityConfig(BaseSettings):
    """Caller authentication settings."""

    access_type: str = Field(default="account", alias="ACCESS_TYPE")
    access_codes_raw: str = Field(default="", alias="CODE")
    allow_user_token: bool = Field(default=True, alias="ALLOW_USER_TOKEN")
    api_key_header: str = "X-API-Key"
    admin_api_key: str = Field(default="", alias="ADMIN_API_KEY")

    @field_validator("access_type")
    @classmethod
    def validate_access_type(cls, v: str) -> str:
        """Accept the deployment mode by name."""
        v = v.lower()
        if v not in ("account", "code", "token"):
            raise ValueError("access_type must be one of: ['account', 'code', 'token']")
        return v

    @field_validator("allow_user_token", mode="before")
    @classmethod
    def validate_allow_user_token(cls, v) -> bool:
        """Convert string boolean values to actual boolean."""
        return str_to_bool(v)

    @property
    def access_code_hashes(self) -> Set[str]:
        """md5 digests of the configured shared access codes."""
        return {
            hashlib.md5(code.encode("utf-8")).hexdigest()
            for code in split_csv(self.access_codes_raw)
        }


class ApplicationConfig(
    ServerConfig,
    RedisConfig,
    ProviderConfig,
    QuotaConfig,
    MonitoringConfig,
    SecurityConfig,
    BaseSettings
):
    """Main application configuration that combines all configuration domains."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )
