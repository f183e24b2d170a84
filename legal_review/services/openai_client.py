"""
Shared OpenAI client management module.

The API key lives in the settings table and can change at runtime, so clients
are cached per key instead of once per process.

Usage:
    from legal_review.services.openai_client import get_openai_client

    client = get_openai_client(api_key)
    completion = client.chat.completions.create(...)
"""

import logging
import threading
from typing import Dict

from openai import OpenAI

from legal_review.config import get_settings

# Module-level setup
logger = logging.getLogger(__name__)

# One client per API key
_client_cache: Dict[str, OpenAI] = {}

# Thread-safe initialization lock
_client_init_lock = threading.Lock()


def get_openai_client(api_key: str) -> OpenAI:
    """
    Get or create a cached OpenAI client for an API key.

    Uses double-checked locking so concurrent callers with the same key share a
    single client instance.

    Args:
        api_key: OpenAI API key from the openai_api_key setting

    Returns:
        OpenAI: Configured OpenAI client instance

    Raises:
        ValueError: If api_key is empty
    """
    if not api_key:
        raise ValueError("OpenAI API key not configured")

    client = _client_cache.get(api_key)
    if client is None:
        with _client_init_lock:
            client = _client_cache.get(api_key)
            if client is None:
                client = OpenAI(
                    api_key=api_key,
                    timeout=get_settings().engine_timeout_seconds,
                )
                _client_cache[api_key] = client
                logger.info("OpenAI client initialized successfully")

    return client


def clear_client_cache() -> None:
    """Drop cached clients (after an API key change)."""
    with _client_init_lock:
        _client_cache.clear()
