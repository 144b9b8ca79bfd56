"""
Shared test fixtures for collector tests.

Provides environment variable fixtures for CollectorSettings configuration
tests. All collector env vars are cleaned before each test to ensure
isolation.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest

# All CollectorSettings environment variable names, used for cleanup.
_ALL_COLLECTOR_ENV_VARS = (
    "GATEWAY_HOST",
    "GATEWAY_PASSWORD",
    "POLL_INTERVAL_S",
    "REQUEST_TIMEOUT_S",
    "STATEFILE_PATH",
    "TIMESERIES_PATH",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_collector_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all collector env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_COLLECTOR_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for CollectorSettings.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "GATEWAY_HOST": "192.168.1.50",
        "GATEWAY_PASSWORD": "test-password",
        "POLL_INTERVAL_S": "2.5",
        "REQUEST_TIMEOUT_S": "4",
        "STATEFILE_PATH": "/tmp/test-state.json",
        "TIMESERIES_PATH": "-",
        "LOG_LEVEL": "debug",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones).

    Optional variables should fall back to their defaults.
    """
    env = {
        "GATEWAY_HOST": "10.0.0.50",
        "GATEWAY_PASSWORD": "secret-xyz",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
