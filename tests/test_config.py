"""
Tests for settings loading.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from chanfund.config import Settings, get_settings


def test_defaults(monkeypatch):
    for var in ("RPC_URL", "RPC_USER", "RPC_PASSWORD", "RPC_TIMEOUT", "FORWARD_FEE_RATE"):
        monkeypatch.delenv(var, raising=False)

    settings = Settings(_env_file=None)

    assert settings.rpc_url == "http://127.0.0.1:8332"
    assert settings.rpc_timeout == 30.0
    assert settings.forward_fee_rate is False
    assert settings.log_level == "INFO"


def test_environment(monkeypatch):
    monkeypatch.setenv("RPC_URL", "http://bitcoind:18443")
    monkeypatch.setenv("rpc_user", "alice")
    monkeypatch.setenv("FORWARD_FEE_RATE", "true")

    settings = get_settings()

    assert settings.rpc_url == "http://bitcoind:18443"
    assert settings.rpc_user == "alice"
    assert settings.forward_fee_rate is True


def test_init_overrides_environment(monkeypatch):
    monkeypatch.setenv("RPC_URL", "http://bitcoind:18443")

    assert Settings(rpc_url="http://other:8332").rpc_url == "http://other:8332"


def test_timeout_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(rpc_timeout=0)
