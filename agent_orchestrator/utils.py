"""
Utility functions for the specialist routing engine.

This module provides:
- Environment variable loading with typed defaults
- Serialized loguru output on stdout
- A Timer that logs how long a block took
- Session ID generation
- Input sanitization for safe logging
"""

import os
import re
import sys
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from dotenv import load_dotenv
from loguru import logger


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


# Optional environment variables with defaults, grouped by the type they convert to
INT_SETTINGS = {
    "SESSION_HISTORY_LIMIT": 10,
    "SESSION_IDLE_TIMEOUT_MINUTES": 60,
    "SESSION_SWEEP_INTERVAL_MINUTES": 60,
    "MAX_QUERY_LENGTH": 4000,
}

FLOAT_SETTINGS = {
    "CLASSIFIER_TIMEOUT_SECONDS": 10.0,
    "INVOCATION_TIMEOUT_SECONDS": 30.0,
}

BOOL_SETTINGS = {
    "CLASSIFIER_ENABLED": True,
}

STRING_SETTINGS = {
    "OPENROUTER_API_KEY": "",
    "LLM_BASE_URL": "https://openrouter.ai/api/v1",
    "GENERATION_MODEL": "anthropic/claude-sonnet-4",
    "ROUTING_MODEL": "openai/gpt-4o-mini",
    "FALLBACK_AGENT_ID": "general-assistant",
    "SPECIALISTS_CONFIG_PATH": "",
    "LOG_LEVEL": "INFO",
}


def setup_logging(level: Optional[str] = None) -> None:
    """
    Send serialized loguru records to stdout at the configured level.
    """
    # Remove default handler
    logger.remove()

    logger.add(
        sys.stdout,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
        level=level or os.getenv("LOG_LEVEL", "INFO"),
        serialize=True
    )

    logger.info("Logging configuration complete")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_and_validate_env() -> Dict[str, Any]:
    """
    Load environment variables and convert them to typed settings.

    Nothing is strictly required at load time: the LLM collaborators check
    for their API key when they are constructed.

    Returns:
        Dict[str, Any]: Configuration dictionary with validated values
    """
    load_dotenv()

    config: Dict[str, Any] = {}

    for var, default in STRING_SETTINGS.items():
        config[var] = os.getenv(var, default)

    for var, default in INT_SETTINGS.items():
        value = os.getenv(var, default)
        try:
            config[var] = int(value)
            if config[var] <= 0:
                raise ValueError(value)
        except ValueError:
            logger.warning(f"Invalid value for {var}: {value}, using default: {default}")
            config[var] = default

    for var, default in FLOAT_SETTINGS.items():
        value = os.getenv(var, default)
        try:
            config[var] = float(value)
            if config[var] <= 0:
                raise ValueError(value)
        except ValueError:
            logger.warning(f"Invalid value for {var}: {value}, using default: {default}")
            config[var] = default

    for var, default in BOOL_SETTINGS.items():
        config[var] = _parse_bool(os.getenv(var, default))

    if not config["FALLBACK_AGENT_ID"].strip():
        config["FALLBACK_AGENT_ID"] = STRING_SETTINGS["FALLBACK_AGENT_ID"]

    logger.info(
        "Environment configuration loaded",
        api_key_configured=bool(config["OPENROUTER_API_KEY"]),
        history_limit=config["SESSION_HISTORY_LIMIT"],
        idle_timeout_minutes=config["SESSION_IDLE_TIMEOUT_MINUTES"]
    )
    return config


def generate_session_id() -> str:
    """
    Generate a unique session ID using UUID4.

    Returns:
        str: Unique session ID
    """
    return str(uuid.uuid4())


def sanitize_for_logging(text: str, max_length: int = 200) -> str:
    """
    Mask likely secrets in a user query and cap its length before logging.

    Args:
        text: Query or reply text
        max_length: Characters kept before the ellipsis
    """
    if not text:
        return ""

    sensitive_patterns = [
        r'sk-[a-zA-Z0-9]+',  # API keys starting with sk-
        r'Bearer\s+[a-zA-Z0-9]+',  # Bearer tokens
        r'\b[A-Za-z0-9]{20,}\b'  # Long alphanumeric strings (potential tokens)
    ]

    sanitized = text
    for pattern in sensitive_patterns:
        sanitized = re.sub(pattern, '[REDACTED]', sanitized, flags=re.IGNORECASE)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."

    return sanitized


def truncate(text: str, limit: int) -> str:
    """Cut text to limit characters, appending an ellipsis when cut."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def get_utc_datetime() -> datetime:
    """Timezone-aware now, used for session activity timestamps."""
    return datetime.now(timezone.utc)


def get_current_timestamp() -> str:
    """Current UTC timestamp as an ISO string."""
    return get_utc_datetime().isoformat()


class Timer:
    """Logs the duration of the wrapped block under an operation name."""

    def __init__(self, operation_name: str = "operation"):
        self.operation_name = operation_name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = get_utc_datetime()
        logger.debug(f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = get_utc_datetime()
        duration_ms = (self.end_time - self.start_time).total_seconds() * 1000

        if exc_type is None:
            logger.info(f"Completed {self.operation_name}", duration_ms=duration_ms)
        else:
            logger.error(f"Failed {self.operation_name}", duration_ms=duration_ms, error=str(exc_val))

    @property
    def duration_ms(self) -> float:
        """Get duration in milliseconds, live while the block is still running."""
        if self.start_time is None:
            return 0.0
        end = self.end_time or get_utc_datetime()
        return (end - self.start_time).total_seconds() * 1000


# Global configuration instance
_config: Optional[Dict[str, Any]] = None


def get_config() -> Dict[str, Any]:
    """
    Process-wide settings, read from the environment on first use.

    Returns:
        Dict[str, Any]: Configuration dictionary
    """
    global _config
    if _config is None:
        _config = load_and_validate_env()
    return _config


def initialize_app():
    """
    Set up logging and load settings once, before the router is built.
    Call this at app startup.
    """
    setup_logging()
    config = get_config()

    logger.info(
        "Application initialization complete",
        models={
            "generation": config["GENERATION_MODEL"],
            "routing": config["ROUTING_MODEL"]
        },
        session_settings={
            "history_limit": config["SESSION_HISTORY_LIMIT"],
            "idle_timeout_minutes": config["SESSION_IDLE_TIMEOUT_MINUTES"],
            "sweep_interval_minutes": config["SESSION_SWEEP_INTERVAL_MINUTES"]
        }
    )
