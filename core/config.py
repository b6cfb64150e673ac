"""
Configuration Management Module

This module handles loading, validating, and providing access to the feed
connection configuration from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file (variables prefixed with FEED_)
- Provides type-safe access to configuration values
- Builds the RetryPolicy used by the connection state machine
- Validates the values the connection manager cannot work without

Usage:
    from core.config import settings

    print(settings.uri)
    print(settings.liveness_timeout_ms)
    policy = settings.retry_policy
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from core.exceptions import ConfigurationError
from core.schemas import RetryPolicy


class FeedSettings(BaseSettings):
    """
    Feed Connection Settings

    Values are automatically loaded from FEED_* environment variables or .env file.

    Attributes:
        uri: WebSocket address of the streaming endpoint
        liveness_timeout_ms: Maximum silence on an open connection before reconnecting
        liveness_check_interval_ms: How often the liveness monitor checks for silence
        poll_interval_ms: Fallback poll interval for wait_until_connected()
        retry_interval_ms: Delay between connection attempts
        retry_backoff_factor: Delay multiplier per failed attempt (1.0 = fixed interval)
        retry_max_interval_ms: Upper bound for the retry delay
        retry_max_attempts: Attempts before connect() gives up (0 = retry forever)
        ws_heartbeat_seconds: WebSocket ping interval used by aiohttp
        ws_open_timeout_seconds: Timeout for a single WebSocket handshake
        environment: Current environment (development, production)
        log_level: Logging level
    """

    # ============================================
    # Endpoint Configuration
    # ============================================

    uri: str = Field(
        default="",
        description="WebSocket URI of the streaming endpoint"
    )

    # ============================================
    # Liveness Configuration
    # ============================================

    liveness_timeout_ms: int = Field(
        default=5000,
        description="Silence threshold before a connection is considered stale (ms)"
    )

    liveness_check_interval_ms: int = Field(
        default=100,
        description="Interval between liveness checks (ms)"
    )

    poll_interval_ms: int = Field(
        default=100,
        description="Fallback poll interval while waiting for a connection (ms)"
    )

    # ============================================
    # Retry Configuration
    # ============================================

    retry_interval_ms: int = Field(
        default=100,
        description="Delay between connection attempts (ms)"
    )

    retry_backoff_factor: float = Field(
        default=1.0,
        description="Multiplier applied to the retry delay after each failure"
    )

    retry_max_interval_ms: int = Field(
        default=30_000,
        description="Maximum delay between connection attempts (ms)"
    )

    retry_max_attempts: int = Field(
        default=0,
        description="Maximum connection attempts per connect() call (0 = unlimited)"
    )

    # ============================================
    # WebSocket Transport Configuration
    # ============================================

    ws_heartbeat_seconds: float = Field(
        default=30.0,
        description="WebSocket ping interval (seconds)"
    )

    ws_open_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for the WebSocket handshake (seconds)"
    )

    # ============================================
    # Application Configuration
    # ============================================

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        # FEED_URI, FEED_LIVENESS_TIMEOUT_MS, ...
        env_prefix="FEED_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Derived Values
    # ============================================

    @property
    def retry_policy(self) -> RetryPolicy:
        """
        Build the RetryPolicy described by the retry_* settings.

        Example:
            >>> FeedSettings(retry_max_attempts=0).retry_policy.max_attempts is None
            True
        """
        return RetryPolicy(
            interval_ms=self.retry_interval_ms,
            backoff_factor=self.retry_backoff_factor,
            max_interval_ms=self.retry_max_interval_ms,
            max_attempts=self.retry_max_attempts or None,
        )


# ============================================
# Global Settings Instance
# ============================================

settings = FeedSettings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Optional[FeedSettings] = None) -> None:
    """
    Validate feed settings before a connection is built from them.

    Args:
        config: Settings to check (defaults to the global settings)

    Raises:
        ConfigurationError: If a setting is missing or invalid
    """
    # logging.py imports config.py, so we can't import at module level
    from core.logging import logger

    config = config or settings

    if not config.uri.strip():
        raise ConfigurationError("FEED_URI must be set to the streaming endpoint address")

    if not config.uri.startswith(("ws://", "wss://")):
        raise ConfigurationError(f"Invalid FEED_URI: '{config.uri}'. Must start with ws:// or wss://")

    if config.liveness_timeout_ms <= 0:
        raise ConfigurationError(
            f"Invalid FEED_LIVENESS_TIMEOUT_MS: {config.liveness_timeout_ms}. Must be positive"
        )

    for name in ("liveness_check_interval_ms", "poll_interval_ms", "retry_interval_ms"):
        if getattr(config, name) <= 0:
            raise ConfigurationError(f"Invalid FEED_{name.upper()}: {getattr(config, name)}. Must be positive")

    if config.retry_backoff_factor < 1.0:
        raise ConfigurationError(
            f"Invalid FEED_RETRY_BACKOFF_FACTOR: {config.retry_backoff_factor}. Must be >= 1.0"
        )

    if config.retry_max_attempts < 0:
        raise ConfigurationError(
            f"Invalid FEED_RETRY_MAX_ATTEMPTS: {config.retry_max_attempts}. Use 0 for unlimited"
        )

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid FEED_LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Feed endpoint: {config.uri}")
    logger.info(f"Liveness timeout: {config.liveness_timeout_ms}ms")
    attempts = config.retry_max_attempts or "unlimited"
    logger.info(f"Retry: every {config.retry_interval_ms}ms, attempts: {attempts}")
