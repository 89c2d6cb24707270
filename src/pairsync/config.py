"""Client configuration for pairsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pairsync._constants import (
    API_PREFIX,
    BASE_URL,
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_CAP,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    STORE_URL,
    TTL_ACCOUNT_SUMMARY,
    TTL_BOT_EVENTS,
    TTL_CORRELATION_PAIRS,
    TTL_DASHBOARD,
    TTL_HEALTH,
    TTL_PERFORMANCE_HISTORY,
    TTL_SYNC_STATUS,
    TTL_TRADES,
)
from pairsync.exceptions import PairsyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class CacheTtls:
    """Per-entity cache lifetimes in seconds.

    Fast-changing data (bot events, trades) is trusted briefly; slower
    aggregates (correlation pairs, performance history) for longer.
    """

    bot_events: float = TTL_BOT_EVENTS
    trades: float = TTL_TRADES
    sync_status: float = TTL_SYNC_STATUS
    account_summary: float = TTL_ACCOUNT_SUMMARY
    correlation_pairs: float = TTL_CORRELATION_PAIRS
    dashboard: float = TTL_DASHBOARD
    health: float = TTL_HEALTH
    performance_history: float = TTL_PERFORMANCE_HISTORY


@dataclasses.dataclass(frozen=True)
class PairsyncConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Root URL of the bot's HTTP API (the ``/api`` prefix is appended).
    store_url : str
        Root URL of the live document store's HTTP read interface.
    store_token : str or None
        Bearer token for live store reads.
    mqtt_host : str or None
        Live store push broker host. ``None`` disables push subscriptions.
    mqtt_port : int
        Broker port.
    mqtt_username : str or None
        Broker username.
    mqtt_password : str or None
        Broker password.
    mqtt_tls : bool
        Connect to the broker over TLS.
    mqtt_topic_prefix : str
        Topic prefix; collection changes arrive on ``<prefix>/<collection>``.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    live_enabled : bool
        Enable live subscriptions (including the passive sync feed).
    request_timeout : float
        Total timeout in seconds for a single primary API request.
    max_retries : int
        Retries after the first attempt for transient primary failures.
    backoff_base : float
        First retry delay in seconds; doubles on each retry.
    backoff_cap : float
        Upper bound for a single retry delay.
    preferences_path : str or None
        JSON file where dashboard preferences are persisted. ``None``
        keeps preferences in memory only.
    ttls : CacheTtls
        Per-entity cache lifetimes.
    """

    base_url: str = BASE_URL
    store_url: str = STORE_URL
    store_token: str | None = None
    mqtt_host: str | None = None
    mqtt_port: int = 1883
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_tls: bool = False
    mqtt_topic_prefix: str = "pairsync"
    mqtt_keepalive: int = 60
    live_enabled: bool = True
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_cap: float = DEFAULT_BACKOFF_CAP
    preferences_path: str | None = None
    ttls: CacheTtls = dataclasses.field(default_factory=CacheTtls)

    def __post_init__(self) -> None:
        if not self.base_url:
            raise PairsyncConfigError("base_url must be set")
        if self.request_timeout <= 0:
            raise PairsyncConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.max_retries < 0:
            raise PairsyncConfigError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.backoff_base < 0 or self.backoff_cap < 0:
            raise PairsyncConfigError("backoff delays must be >= 0")

    @property
    def api_url(self) -> str:
        """Base URL including the API prefix, without a trailing slash."""
        return f"{self.base_url.rstrip('/')}{API_PREFIX}"

    @classmethod
    def from_env(cls, **overrides: Any) -> PairsyncConfig:
        """Create configuration from environment variables.

        Reads ``PAIRSYNC_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        PairsyncConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "PAIRSYNC_API_URL": "base_url",
            "PAIRSYNC_STORE_URL": "store_url",
            "PAIRSYNC_STORE_TOKEN": "store_token",
            "PAIRSYNC_MQTT_HOST": "mqtt_host",
            "PAIRSYNC_MQTT_USERNAME": "mqtt_username",
            "PAIRSYNC_MQTT_PASSWORD": "mqtt_password",
            "PAIRSYNC_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
            "PAIRSYNC_PREFERENCES_PATH": "preferences_path",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_INT_MAP = {
            "PAIRSYNC_MQTT_PORT": "mqtt_port",
            "PAIRSYNC_MQTT_KEEPALIVE": "mqtt_keepalive",
            "PAIRSYNC_MAX_RETRIES": "max_retries",
        }
        _ENV_FLOAT_MAP = {
            "PAIRSYNC_REQUEST_TIMEOUT": "request_timeout",
            "PAIRSYNC_BACKOFF_BASE": "backoff_base",
            "PAIRSYNC_BACKOFF_CAP": "backoff_cap",
        }
        try:
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
        except ValueError as exc:
            raise PairsyncConfigError(f"Invalid numeric environment value: {exc}") from exc

        if "mqtt_tls" not in overrides:
            config_kwargs["mqtt_tls"] = _env_bool(env.get("PAIRSYNC_MQTT_TLS"), False)

        if "live_enabled" not in overrides:
            config_kwargs["live_enabled"] = _env_bool(env.get("PAIRSYNC_LIVE_ENABLED"), True)

        # Allow overriding TTLs via a nested dict
        ttl_overrides = overrides.pop("ttls", None)
        if isinstance(ttl_overrides, dict):
            config_kwargs["ttls"] = CacheTtls(**ttl_overrides)
        elif isinstance(ttl_overrides, CacheTtls):
            config_kwargs["ttls"] = ttl_overrides

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
