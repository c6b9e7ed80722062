"""
Centralized configuration with environment variable overrides.

All office-specific values, thresholds, timeouts, and model settings are
configurable here. Nothing is hardcoded in handler or tool logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from complaint_agent.logging_context import SessionIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] [%(session_id)s] %(levelname)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class AgentConfig:
    """Persona and conversation policy settings."""

    name: str = os.getenv("AGENT_NAME", "Leoma")
    office_name: str = os.getenv("OFFICE_NAME", "the Ombudsman office")
    min_description_length: int = _safe_int("MIN_DESCRIPTION_LENGTH", "20")
    review_days: str = os.getenv("REVIEW_DAYS", "2-3 business days")


@dataclass(frozen=True)
class ModelConfig:
    """Completion service settings."""

    api_key: str = os.getenv("OPENAI_API_KEY", "")
    base_url: str = os.getenv("OPENAI_BASE_URL", "")
    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.3")
    classification_temperature: float = _safe_float("CLASSIFICATION_TEMPERATURE", "0.1")
    request_timeout_sec: float = _safe_float("LLM_REQUEST_TIMEOUT", "20.0")


@dataclass(frozen=True)
class ClassificationConfig:
    """Confidence gate for accepting an automatic classification."""

    threshold: float = _safe_float("CLASSIFICATION_THRESHOLD", "0.4")


@dataclass(frozen=True)
class StoreConfig:
    """Persistence timeouts and retention."""

    timeout_sec: float = _safe_float("STORE_TIMEOUT", "5.0")
    session_max_age_hours: int = _safe_int("SESSION_MAX_AGE_HOURS", "24")


@dataclass(frozen=True)
class RetryConfig:
    """Bounded retry policy for transient upstream failures."""

    max_attempts: int = _safe_int("RETRY_MAX_ATTEMPTS", "3")
    backoff_base_sec: float = _safe_float("RETRY_BACKOFF_BASE", "0.5")


@dataclass(frozen=True)
class ServerConfig:
    """HTTP / WebSocket listener settings."""

    host: str = os.getenv("SERVER_HOST", "0.0.0.0")
    port: int = _safe_int("PORT", "3001")
    stream_chunk_words: int = _safe_int("STREAM_CHUNK_WORDS", "6")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    agent: AgentConfig = field(default_factory=AgentConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if not 0.0 <= config.model.classification_temperature <= 2.0:
        raise ValueError(
            "CLASSIFICATION_TEMPERATURE must be between 0.0 and 2.0, "
            f"got {config.model.classification_temperature}"
        )
    if config.model.request_timeout_sec <= 0:
        raise ValueError(
            f"LLM_REQUEST_TIMEOUT must be > 0, got {config.model.request_timeout_sec}"
        )
    if not 0.0 <= config.classification.threshold <= 1.0:
        raise ValueError(
            "CLASSIFICATION_THRESHOLD must be between 0.0 and 1.0, "
            f"got {config.classification.threshold}"
        )
    if config.agent.min_description_length < 1:
        raise ValueError(
            f"MIN_DESCRIPTION_LENGTH must be >= 1, got {config.agent.min_description_length}"
        )
    if config.store.timeout_sec <= 0:
        raise ValueError(f"STORE_TIMEOUT must be > 0, got {config.store.timeout_sec}")
    if config.store.session_max_age_hours < 1:
        raise ValueError(
            f"SESSION_MAX_AGE_HOURS must be >= 1, got {config.store.session_max_age_hours}"
        )
    if config.retry.max_attempts < 1:
        raise ValueError(f"RETRY_MAX_ATTEMPTS must be >= 1, got {config.retry.max_attempts}")
    if config.retry.backoff_base_sec < 0:
        raise ValueError(
            f"RETRY_BACKOFF_BASE must be >= 0, got {config.retry.backoff_base_sec}"
        )
    if config.server.stream_chunk_words < 1:
        raise ValueError(
            f"STREAM_CHUNK_WORDS must be >= 1, got {config.server.stream_chunk_words}"
        )


def build_log_handler() -> logging.Handler:
    """Console handler that stamps every record, library ones included, with the session ID."""
    handler = logging.StreamHandler()
    handler.addFilter(SessionIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    return handler


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        handlers=[build_log_handler()],
    )
    logger.info("Configuration loaded for agent '%s'", config.agent.name)
    return config


# Singleton instance
settings = load_config()
