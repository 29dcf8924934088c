"""Utility functions for the Azure OpenAI proxy."""

from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv

from logger import mask_secret

log = logging.getLogger("azure_proxy")


def load_env_files() -> None:
    """Load .env files from program and current directory."""
    this_dir = Path(__file__).resolve().parent
    p1 = this_dir / ".env"
    p2 = Path.cwd() / ".env"

    loaded_any = False
    if p1.exists():
        loaded_any = load_dotenv(dotenv_path=str(p1), override=True) or loaded_any
        log.info("Loaded .env from %s", str(p1))
    else:
        log.info("No .env in program directory: %s", str(p1))

    if p2.exists() and p2 != p1:
        loaded_any = load_dotenv(dotenv_path=str(p2), override=True) or loaded_any
        log.info("Loaded .env from %s", str(p2))
    elif p2 != p1:
        log.info("No .env in current directory: %s", str(p2))

    if not loaded_any:
        log.info(".env not loaded (not found or no variables applied).")


def dump_config(config) -> None:
    """Log effective configuration at startup."""
    log.info("=== Azure proxy startup config ===")
    log.info("RESOURCE_NAME=%s", config.resource_name)
    log.info("AZURE_DOMAIN=%s", config.azure_domain)
    log.info("API_VERSION=%s", config.api_version)
    log.info(
        "AZURE_API_KEY_set=%s value=%s len=%s",
        bool(config.azure_api_key),
        mask_secret(config.azure_api_key),
        len(config.azure_api_key or ""),
    )
    log.info(
        "API_KEY_set=%s value=%s",
        bool(config.api_key),
        mask_secret(config.api_key),
    )
    if not config.api_key:
        log.warning("API_KEY is not set; every proxied request will be rejected with 403.")
    log.info("MODEL_MAPPER=%s", dict(sorted(config.model_mapper_overrides.items())))
    log.info("STREAM_PACING_MS=%s", config.pacing_delay_s * 1000.0)
    log.info("REQUEST_TIMEOUT_S=%s", config.request_timeout_s or "none")
    log.info("REQUIRE_MODEL=%s", config.require_model)
    log.info("PORT=%s", config.port)
    log.info("LOG_LEVEL=%s", config.log_level)
    log.info("LOG_COLOR=%s", config.log_color)
    log.info("LOG_PATH=%s", config.log_path)
    log.info("USER_AGENT=%s", config.user_agent)
    log.info("WorkingDir=%s", str(Path.cwd()))
    log.info("==================================")
