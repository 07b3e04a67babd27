"""Configuration for the NL Engine.

This module provides configuration settings for the language-model
components: model selection, credentials and the confidence floor.

Environment Variables:
    ANTHROPIC_API_KEY: Credentials for the model path. When unset, every
        adapter goes straight to its rule-based fallback without attempting
        a network call.
    ORDERDESK_MODEL: Claude model to use. Defaults to "claude-haiku-4-5".
    ORDERDESK_CONFIDENCE_FLOOR: Model results below this confidence are
        treated as "unknown". Defaults to 0.35.
"""

import os

# Default model - can be overridden via ORDERDESK_MODEL env var
DEFAULT_MODEL = "claude-haiku-4-5"

DEFAULT_CONFIDENCE_FLOOR = 0.35

# Max tokens for structured tool-use responses
DEFAULT_MAX_TOKENS = 1024


def get_model() -> str:
    """Get the Claude model to use for classification and extraction.

    Returns:
        Claude model identifier string.
    """
    return os.environ.get("ORDERDESK_MODEL", DEFAULT_MODEL)


def get_api_key() -> str | None:
    """Return the Anthropic API key, or None when not configured."""
    key = os.environ.get("ANTHROPIC_API_KEY", "").strip()
    return key or None


def has_credentials() -> bool:
    """Whether the model path may be attempted at all."""
    return get_api_key() is not None


def get_confidence_floor() -> float:
    """Get the minimum model confidence that may drive a decision."""
    raw = os.environ.get("ORDERDESK_CONFIDENCE_FLOOR", "").strip()
    if not raw:
        return DEFAULT_CONFIDENCE_FLOOR
    try:
        return float(raw)
    except ValueError:
        return DEFAULT_CONFIDENCE_FLOOR
