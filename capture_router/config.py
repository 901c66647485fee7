"""
Centralized configuration module for the capture router.

This module provides a single source of truth for all configuration,
with environment variable overrides. All modules should import settings from here
rather than using hardcoded values or os.environ.get() calls.
"""

import os
from typing import Optional


class ConfigurationError(RuntimeError):
    """Raised when an identifier required by an operation is not configured."""


class Config:
    """
    Centralized configuration with environment variable overrides.

    Tunables below are read once at import. Destination identifiers and the
    webhook secret are resolved at the point of use through require() and
    optional(), so a missing identifier fails only the operation needing it.
    """

    # ============================================================================
    # LOGGING CONFIGURATION
    # ============================================================================
    LOG_FORMAT: str = os.environ.get("LOG_FORMAT", "json")
    """
    Log format: "json" for production log shipping, "text" for local development.
    Environment: LOG_FORMAT
    """

    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
    """
    Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL.
    Environment: LOG_LEVEL
    """

    # ============================================================================
    # LANGUAGE MODEL
    # ============================================================================
    LLM_BACKEND: str = os.environ.get("LLM_BACKEND", "http")
    """
    Completion client: "http" posts to OPENAI_BASE_URL/chat/completions with
    requests, "sdk" uses the official openai client.
    Environment: LLM_BACKEND
    """

    OPENAI_BASE_URL: str = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").strip()
    """
    Base URL of an OpenAI-compatible API (OpenAI, OpenRouter, local proxies).
    Environment: OPENAI_BASE_URL
    """

    OPENAI_MODEL: str = os.environ.get("OPENAI_MODEL", "gpt-4.1-mini")
    """
    Model used for classification.
    Environment: OPENAI_MODEL
    """

    LLM_TEMPERATURE: float = float(os.environ.get("LLM_TEMPERATURE", "0.2"))

    LLM_JSON_MODE: bool = os.environ.get("LLM_JSON_MODE", "true").lower() in ("1", "true", "yes")
    """
    Ask the endpoint for a JSON-object response (response_format). Disable for
    providers that reject the parameter.
    Environment: LLM_JSON_MODE
    """

    # ============================================================================
    # HTTP TIMEOUTS (seconds)
    # ============================================================================
    LLM_API_TIMEOUT: int = int(os.environ.get("LLM_API_TIMEOUT", "30"))
    """
    LLM API request timeout in seconds.
    Environment: LLM_API_TIMEOUT
    """

    # ============================================================================
    # DATABASE CONFIGURATION
    # ============================================================================
    DATABASE_PATH: str = os.environ.get("DATABASE_PATH", "/app/data/capture_router.db")
    """
    SQLite file backing the table and document stores.
    Environment: DATABASE_PATH
    """

    DB_LOCK_TIMEOUT: float = float(os.environ.get("DB_LOCK_TIMEOUT", "30.0"))
    """
    SQLite BUSY timeout in seconds. When database is locked, wait this long
    before raising an error.
    Environment: DB_LOCK_TIMEOUT
    """

    # ============================================================================
    # RETRY LIMITS
    # ============================================================================
    MAX_HTTP_RETRIES: int = int(os.environ.get("MAX_HTTP_RETRIES", "3"))
    """
    Maximum number of retries for LLM HTTP calls.
    Retryable errors: Timeout, connection errors, 429, 5xx.
    Non-retryable: any other 4xx.
    Environment: MAX_HTTP_RETRIES
    """

    # ============================================================================
    # CIRCUIT BREAKER CONFIGURATION
    # ============================================================================
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = int(
        os.environ.get("CIRCUIT_BREAKER_FAILURE_THRESHOLD", "5")
    )
    """
    Number of consecutive failures before a circuit breaker opens.
    Environment: CIRCUIT_BREAKER_FAILURE_THRESHOLD
    """

    CIRCUIT_BREAKER_TIMEOUT: int = int(os.environ.get("CIRCUIT_BREAKER_TIMEOUT", "60"))
    """
    Seconds to wait in OPEN state before attempting recovery (HALF_OPEN state).
    Environment: CIRCUIT_BREAKER_TIMEOUT
    """

    # ============================================================================
    # ACTIVITY LOG VIEWER
    # ============================================================================
    ACTIVITY_PAGE_SIZE: int = int(os.environ.get("ACTIVITY_PAGE_SIZE", "100"))
    ACTIVITY_PAGE_MAX: int = 1000

    # ============================================================================
    # DESTINATION IDENTIFIERS (resolved at point of use)
    # ============================================================================
    DESTINATION_KEYS = (
        "LINKS_SHEET_ID",
        "ACTIVITY_LOG_SHEET_ID",
        "CONFIG_SHEET_ID",
        "IDEAS_FOLDER_ID",
        "INBOX_DOC_ID",
    )

    @staticmethod
    def require(name: str) -> str:
        """
        Return a required identifier from the environment.

        Raises:
            ConfigurationError: if the variable is unset or blank
        """
        value = (os.environ.get(name) or "").strip()
        if not value:
            raise ConfigurationError(f"{name} environment variable is not set")
        return value

    @staticmethod
    def optional(name: str) -> Optional[str]:
        """Return an identifier from the environment, or None when unset or blank."""
        value = (os.environ.get(name) or "").strip()
        return value or None

    @classmethod
    def to_dict(cls) -> dict:
        """
        Export all configuration as dictionary (redacted for logging).

        Destination identifiers are reported as set/missing only.
        """
        config = {}
        sensitive_keys = ["API_KEY", "SECRET", "PASSWORD", "TOKEN", "AUTH"]

        for key in dir(cls):
            if key.startswith("_") or key[0].islower() or key == "DESTINATION_KEYS":
                continue
            value = getattr(cls, key)
            if callable(value):
                continue

            if any(sensitive in key for sensitive in sensitive_keys):
                config[key] = "***REDACTED***"
            else:
                config[key] = value

        for key in cls.DESTINATION_KEYS:
            config[key] = "set" if cls.optional(key) else "missing"
        config["WEBHOOK_SECRET"] = "set" if cls.optional("WEBHOOK_SECRET") else "missing"

        return config


# Create a singleton instance
config = Config()
