# =============================================================================
# practice_core/offline/config.py
# Offline Sync Configuration
# =============================================================================
"""
Configuration for the offline sync subsystem.

Values are layered, later sources winning:
1. Dataclass defaults
2. The [offline_sync] section of .streamlit/secrets.toml
3. Environment variables (a local .env file is loaded first)
4. Explicit overrides passed to load_config()

Expected secrets.toml format:
    [offline_sync]
    backend = "http"
    api_base_url = "https://compliance.example.com"
    api_token = "..."
    db_path = "local_data/practice_offline.db"
    poll_interval = 5
    auto_sync_interval = 30
"""

from __future__ import annotations
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional
import logging

import streamlit as st
from dotenv import load_dotenv

from practice_core.errors import ConfigurationError

logger = logging.getLogger(__name__)


SUPPORTED_BACKENDS = ("http", "supabase")

ENV_VARS = {
    "PRACTICE_DB_PATH": "db_path",
    "PRACTICE_SYNC_BACKEND": "backend",
    "PRACTICE_API_URL": "api_base_url",
    "PRACTICE_API_TOKEN": "api_token",
    "PRACTICE_ID": "default_practice_id",
    "PRACTICE_REQUEST_TIMEOUT": "request_timeout",
    "PRACTICE_POLL_INTERVAL": "poll_interval",
    "PRACTICE_AUTO_SYNC_INTERVAL": "auto_sync_interval",
    "PRACTICE_SYNC_ON_QUEUE": "sync_on_queue",
    "PRACTICE_LOG_TO_FILE": "log_to_file",
    "SUPABASE_URL": "supabase_url",
    "SUPABASE_KEY": "supabase_key",
}

_FLOAT_FIELDS = {
    "request_timeout",
    "poll_interval",
    "auto_sync_interval",
    "check_interval_online",
    "check_interval_offline",
}
_BOOL_FIELDS = {"sync_on_queue", "log_to_file"}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class OfflineSyncConfig:
    """Settings for the local store, replay backend and sync timing."""
    db_path: str = "local_data/practice_offline.db"
    backend: str = "http"
    api_base_url: Optional[str] = None
    api_token: Optional[str] = None
    default_practice_id: Optional[str] = None
    request_timeout: float = 10.0
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    poll_interval: float = 5.0              # Seconds between pending-count refreshes
    auto_sync_interval: float = 30.0        # Seconds between background syncs, 0 disables
    check_interval_online: float = 30.0
    check_interval_offline: float = 10.0
    sync_on_queue: bool = True
    last_sync_key: str = "lastSync"
    log_to_file: bool = True

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> OfflineSyncConfig:
        """Build a config from loosely typed values (strings from env/secrets)."""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in values.items():
            if key not in known:
                logger.debug(f"Ignoring unknown offline sync setting: {key}")
                continue
            kwargs[key] = _coerce(key, value)

        config = cls(**kwargs)
        config.validate()
        return config

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: if a value is out of range
        """
        if self.backend not in SUPPORTED_BACKENDS:
            raise ConfigurationError(
                f"Unsupported sync backend {self.backend!r}",
                config_key="backend",
                expected_type=" | ".join(SUPPORTED_BACKENDS),
            )
        for name in ("request_timeout", "poll_interval", "check_interval_online", "check_interval_offline"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive", config_key=name, expected_type="float > 0")
        if self.auto_sync_interval < 0:
            raise ConfigurationError(
                "auto_sync_interval must be zero or positive",
                config_key="auto_sync_interval",
                expected_type="float >= 0",
            )


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in _FLOAT_FIELDS:
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid number for {key}: {value!r}", config_key=key, expected_type="float")
    if key in _BOOL_FIELDS:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigurationError(f"Invalid boolean for {key}: {value!r}", config_key=key, expected_type="bool")
    return str(value)


def _load_from_secrets() -> Dict[str, Any]:
    """Read the [offline_sync] section from Streamlit secrets, if any."""
    try:
        if hasattr(st, "secrets") and "offline_sync" in st.secrets:
            return dict(st.secrets["offline_sync"])
    except Exception as e:
        # No secrets.toml configured
        logger.debug(f"Streamlit secrets not available: {e}")
    return {}


def _load_from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    return {
        field_name: environ[var]
        for var, field_name in ENV_VARS.items()
        if environ.get(var) not in (None, "")
    }


def load_config(
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    use_secrets: bool = True,
    use_dotenv: bool = True,
) -> OfflineSyncConfig:
    """
    Load the offline sync configuration.

    Args:
        overrides: Values that win over every other source
        environ: Environment mapping (default: os.environ)
        use_secrets: Whether to read Streamlit secrets
        use_dotenv: Whether to load a .env file into os.environ first

    Returns:
        Validated OfflineSyncConfig
    """
    if use_dotenv:
        load_dotenv()

    values: Dict[str, Any] = {}
    if use_secrets:
        values.update(_load_from_secrets())
    values.update(_load_from_env(os.environ if environ is None else environ))
    if overrides:
        values.update(overrides)

    return OfflineSyncConfig.from_dict(values)
