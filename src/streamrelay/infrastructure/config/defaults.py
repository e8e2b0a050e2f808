"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "streamrelay",
    "environment": "dev",
    "http": {
        "timeout_seconds": 20.0,
        "user_agent": "StreamRelay/0.1.0",
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "tmdb": {
        "api_key": None,
        "language": "en-US",
    },
    "resolution": {
        "provider_timeout_seconds": 20.0,
        "retry_attempts": 3,
        "retry_backoff_seconds": 0.5,
        "retry_max_backoff_seconds": 8.0,
        "cache_max_age": 3600,
        "cache_max_age_empty": 60,
        "stale_revalidate_age": 14400,
        "stale_error_age": 604800,
    },
    "providers": {
        "embed_api": {
            "enabled": True,
            "base_url": "http://localhost:8080",
        },
        "hdrezka": {
            "enabled": True,
            "base_url": "https://hdrezka.ag",
        },
    },
    "relay": {
        "enabled": True,
        "public_url": None,
        "timeout_seconds": 15.0,
    },
}
