from __future__ import annotations

import pytest

from pairsync.config import CacheTtls, PairsyncConfig
from pairsync.exceptions import PairsyncConfigError


def test_defaults() -> None:
    config = PairsyncConfig()
    assert config.api_url == "http://localhost:8080/api"
    assert config.request_timeout == 10.0
    assert config.max_retries == 3
    assert config.ttls.trades == 15.0
    assert config.ttls.performance_history == 120.0


def test_api_url_strips_trailing_slash() -> None:
    assert PairsyncConfig(base_url="https://bot.example/").api_url == "https://bot.example/api"


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAIRSYNC_API_URL", "https://bot.example")
    monkeypatch.setenv("PAIRSYNC_MQTT_HOST", "broker.example")
    monkeypatch.setenv("PAIRSYNC_MQTT_PORT", "8883")
    monkeypatch.setenv("PAIRSYNC_MQTT_TLS", "yes")
    monkeypatch.setenv("PAIRSYNC_LIVE_ENABLED", "off")
    monkeypatch.setenv("PAIRSYNC_REQUEST_TIMEOUT", "2.5")

    config = PairsyncConfig.from_env()

    assert config.base_url == "https://bot.example"
    assert config.mqtt_host == "broker.example"
    assert config.mqtt_port == 8883
    assert config.mqtt_tls is True
    assert config.live_enabled is False
    assert config.request_timeout == 2.5


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAIRSYNC_MAX_RETRIES", "7")
    monkeypatch.setenv("PAIRSYNC_LIVE_ENABLED", "true")

    config = PairsyncConfig.from_env(max_retries=1, live_enabled=False, ttls={"trades": 5.0})

    assert config.max_retries == 1
    assert config.live_enabled is False
    assert config.ttls == CacheTtls(trades=5.0)


def test_from_env_rejects_bad_numbers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAIRSYNC_MQTT_PORT", "not-a-port")
    with pytest.raises(PairsyncConfigError):
        PairsyncConfig.from_env()


def test_validation() -> None:
    with pytest.raises(PairsyncConfigError):
        PairsyncConfig(request_timeout=0)
    with pytest.raises(PairsyncConfigError):
        PairsyncConfig(max_retries=-1)
