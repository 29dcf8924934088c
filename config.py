"""Configuration management for the Azure OpenAI proxy."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict


def _env_bool(name: str, default: bool) -> bool:
    """Get boolean environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    """Get float environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    """Get integer environment variable with fallback."""
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    """Get string environment variable with fallback (empty counts as unset)."""
    v = os.getenv(name)
    if not v:
        return default
    return v


def _pairs_dict(name: str) -> Dict[str, str]:
    """
    Parse "public=deployment,other=deployment2" into a dict.

    Entries without "=" or with an empty side are ignored.
    """
    v = os.getenv(name, "")
    out: Dict[str, str] = {}
    for item in v.split(","):
        key, sep, value = item.partition("=")
        key, value = key.strip(), value.strip()
        if sep and key and value:
            out[key] = value
    return out


@dataclass(frozen=True)
class AppConfig:
    """Application configuration."""

    # Azure settings
    resource_name: str
    api_version: str
    azure_domain: str
    azure_api_key: str

    # Inbound shared secret compared against the Authorization header
    api_key: str

    # Extra public-name -> deployment entries on top of the built-in table
    model_mapper_overrides: Dict[str, str] = field(default_factory=dict)

    # Streaming
    pacing_delay_s: float = 0.03

    # 0 = no timeout on the upstream call
    request_timeout_s: float = 0.0

    # Reject proxied requests without a model instead of forwarding them
    require_model: bool = False

    # Server settings
    port: int = 8000
    log_level: str = "INFO"
    log_color: bool = True
    log_path: str = "/var/log/azure-proxy/azure-proxy.log"
    user_agent: str = "azure-proxy/1.0.0"

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables."""
        return cls(
            resource_name=_env_str("RESOURCE_NAME", "null"),
            api_version=_env_str("API_VERSION", "2021-03-15-preview"),
            azure_domain=_env_str("AZURE_DOMAIN", "openai.azure.com"),
            azure_api_key=os.getenv("AZURE_API_KEY", ""),
            api_key=os.getenv("API_KEY", ""),
            model_mapper_overrides=_pairs_dict("MODEL_MAPPER"),
            pacing_delay_s=_env_float("STREAM_PACING_MS", 30.0) / 1000.0,
            request_timeout_s=_env_float("REQUEST_TIMEOUT_S", 0.0),
            require_model=_env_bool("REQUIRE_MODEL", False),
            port=_env_int("PORT", 8000),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper().strip(),
            log_color=_env_bool("LOG_COLOR", True),
            log_path=_env_str("LOG_PATH", "/var/log/azure-proxy/azure-proxy.log"),
            user_agent=_env_str("USER_AGENT", "azure-proxy/1.0.0"),
        )

    def validate(self) -> None:
        """Validate configuration."""
        if self.pacing_delay_s < 0:
            raise ValueError("STREAM_PACING_MS must be >= 0")
        if self.request_timeout_s < 0:
            raise ValueError("REQUEST_TIMEOUT_S must be >= 0")
        if not 0 < self.port < 65536:
            raise ValueError("PORT must be in 1..65535")
        if not self.resource_name:
            raise ValueError("RESOURCE_NAME must be non-empty")
        if not self.log_path:
            raise ValueError("LOG_PATH must be non-empty")


def load_config() -> AppConfig:
    """Load configuration from environment."""
    return AppConfig.from_env()
