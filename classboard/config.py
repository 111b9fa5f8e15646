"""
Centralized configuration loader for classboard.

Loads settings from ``config/settings.yaml`` and environment variables,
providing sensible defaults when the file is absent.

Provides:
    - Settings: Global settings loaded from YAML + env vars
    - get_settings(): Singleton accessor for Settings
    - reset_settings(): Drop the cached singleton (tests, reloads)
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from classboard.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# Project root directory (parent of classboard/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Env var -> (Settings attribute, parser)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "CLASSBOARD_SCHEDULER_INTERVAL_SECONDS": ("scheduler_interval_seconds", float),
    "CLASSBOARD_SCHEDULER_JITTER_SECONDS": ("scheduler_jitter_seconds", float),
    "CLASSBOARD_SCHEDULER_RUN_ON_START": ("scheduler_run_on_start", _parse_bool),
    "CLASSBOARD_DEFAULT_PAGE_SIZE": ("default_page_size", int),
    "CLASSBOARD_COPY_PREFIX": ("copy_prefix", str),
    "CLASSBOARD_SENSITIVE_TERMS": ("sensitive_terms", _parse_list),
    "CLASSBOARD_OUTBOX_MAX_ATTEMPTS": ("outbox_max_attempts", int),
    "CLASSBOARD_OUTBOX_BASE_DELAY": ("outbox_base_delay", float),
    "CLASSBOARD_AUDIT_LOG_PATH": ("audit_log_path", str),
    "CLASSBOARD_NOTIFICATION_FUNCTION": ("notification_function", str),
    "LOG_LEVEL": ("log_level", str),
}


# ===========================================================================
# GLOBAL SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global classboard settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    defaults. Environment variables override YAML values.
    """

    # Scheduling engine
    scheduler_interval_seconds: float = 60.0
    scheduler_jitter_seconds: float = 0.0
    scheduler_run_on_start: bool = True

    # Post store
    default_page_size: int = 20
    copy_prefix: str = "Copy of "

    # Audit
    sensitive_terms: List[str] = field(
        default_factory=lambda: ["password", "token", "secret", "key"]
    )
    masked_marker: str = "[MASKED]"
    audit_log_path: str = "logs/audit.jsonl"

    # Side-effect outbox
    outbox_max_attempts: int = 3
    outbox_base_delay: float = 1.0

    # Notification generator (Supabase edge function)
    notification_function: str = "create-post-notifications"

    # Logging
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.scheduler_interval_seconds <= 0:
            raise ConfigurationError(
                f"scheduler_interval_seconds must be positive, got {self.scheduler_interval_seconds}"
            )
        if self.scheduler_jitter_seconds < 0:
            raise ConfigurationError(
                f"scheduler_jitter_seconds must not be negative, got {self.scheduler_jitter_seconds}"
            )
        if self.default_page_size <= 0:
            raise ConfigurationError(
                f"default_page_size must be positive, got {self.default_page_size}"
            )
        if self.outbox_max_attempts < 1:
            raise ConfigurationError(
                f"outbox_max_attempts must be at least 1, got {self.outbox_max_attempts}"
            )

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Raises:
            ConfigurationError: If the YAML cannot be parsed, has unknown
                keys, or an env override has an invalid value.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc
            if not isinstance(data, dict):
                raise ConfigurationError(
                    f"Settings YAML at {path} must be a mapping, got {type(data).__name__}"
                )

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown settings keys in {path}: {sorted(unknown)}"
            )

        # Environment variable overrides
        for env_key, (attr_name, cast_fn) in ENV_OVERRIDES.items():
            env_val = os.environ.get(env_key)
            if env_val is None:
                continue
            try:
                data[attr_name] = cast_fn(env_val)
            except (ValueError, TypeError) as exc:
                raise ConfigurationError(
                    f"Invalid value for env var {env_key}='{env_val}': {exc}"
                ) from exc

        return cls(**data)


# ===========================================================================
# SINGLETON SETTINGS ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global Settings singleton.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """Reset the cached Settings singleton."""
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# PUBLIC API
# ===========================================================================

__all__ = [
    "Settings",
    "ENV_OVERRIDES",
    "get_settings",
    "reset_settings",
    "PROJECT_ROOT",
]
