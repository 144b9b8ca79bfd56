"""
Unit tests for the collector daemon main loop module.

Tests verify:
- A tick samples the gateway, appends a TSV record and publishes state.
- A timeseries failure still publishes; a publish failure still appends.
- Unexpected tick failures propagate.
- run() stops on the shutdown event.
- async_main() exit codes: config error, login failure, unexpected failure,
  clean shutdown.
- Startup logs a config summary without the password.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from collector.src.models import Sample
from collector.src.publisher import PublishError, StatePublisher
from collector.src.session import LoginError
from collector.src.timeseries import TimeseriesSink, format_record

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_sample(ts: int = 1_700_000_000) -> Sample:
    """Create a fake Sample for test assertions."""
    return Sample(
        ts=ts,
        percentage=76.3,
        grid_up=True,
        grid_w=-150,
        solar_w=901,
        powerwall_w=-50,
        home_w=701,
    )


def _make_settings(**overrides: object) -> MagicMock:
    """Create a mock CollectorSettings with sensible defaults."""
    defaults = {
        "gateway_host": "192.168.1.50",
        "gateway_password": "super-secret-password",
        "poll_interval_s": 5.0,
        "request_timeout_s": 10.0,
        "statefile_path": "/tmp/state.json",
        "timeseries_path": "-",
        "log_level": "INFO",
    }
    defaults.update(overrides)
    settings = MagicMock()
    for key, value in defaults.items():
        setattr(settings, key, value)
    return settings


def _make_components() -> dict[str, MagicMock]:
    """Create mock sink and publisher."""
    sink = MagicMock()
    sink.append = MagicMock()
    publisher = MagicMock()
    publisher.publish = MagicMock()
    return {"client": AsyncMock(), "sink": sink, "publisher": publisher}


# ---------------------------------------------------------------------------
# Test: one tick
# ---------------------------------------------------------------------------


class TestTickOnce:
    """A tick runs sample -> append -> publish."""

    @pytest.mark.asyncio
    async def test_tick_calls_full_pipeline(self) -> None:
        from collector.src.main import _tick_once

        components = _make_components()
        sample = _make_sample()

        with patch(
            "collector.src.main.sample_gateway", AsyncMock(return_value=sample)
        ) as mock_sample:
            result = await _tick_once(**components)

        assert result is sample
        mock_sample.assert_awaited_once_with(components["client"])
        components["sink"].append.assert_called_once_with(sample)
        components["publisher"].publish.assert_called_once_with(
            sample.to_state_document()
        )

    @pytest.mark.asyncio
    async def test_tick_writes_real_sinks(self, tmp_path: Path) -> None:
        """With real sinks the TSV line and state file both appear."""
        from collector.src.main import _tick_once

        sample = _make_sample()
        state_path = tmp_path / "state.json"
        series_path = tmp_path / "series.tsv"

        with (
            patch("collector.src.main.sample_gateway", AsyncMock(return_value=sample)),
            TimeseriesSink(series_path) as sink,
        ):
            await _tick_once(
                client=AsyncMock(),
                sink=sink,
                publisher=StatePublisher(state_path),
            )

        assert series_path.read_text() == format_record(sample)
        assert json.loads(state_path.read_text()) == sample.to_state_document()

    @pytest.mark.asyncio
    async def test_publish_failure_still_appends(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A failed publish is logged; the timeseries line is still written."""
        from collector.src.main import _tick_once

        components = _make_components()
        components["publisher"].publish.side_effect = PublishError("disk full")

        with patch(
            "collector.src.main.sample_gateway",
            AsyncMock(return_value=_make_sample()),
        ):
            await _tick_once(**components)

        components["sink"].append.assert_called_once()
        assert "State publish failed" in caplog.text

    @pytest.mark.asyncio
    async def test_append_failure_still_publishes(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A failed append is logged; the state file is still published."""
        from collector.src.main import _tick_once

        components = _make_components()
        components["sink"].append.side_effect = OSError(28, "No space left on device")

        with patch(
            "collector.src.main.sample_gateway",
            AsyncMock(return_value=_make_sample()),
        ):
            await _tick_once(**components)

        components["publisher"].publish.assert_called_once()
        assert "Timeseries append failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates(self) -> None:
        """Errors outside the known failure classes are not swallowed."""
        from collector.src.main import _tick_once

        components = _make_components()
        components["publisher"].publish.side_effect = TypeError("bad document")

        with (
            patch(
                "collector.src.main.sample_gateway",
                AsyncMock(return_value=_make_sample()),
            ),
            pytest.raises(TypeError),
        ):
            await _tick_once(**components)


# ---------------------------------------------------------------------------
# Test: run() and shutdown
# ---------------------------------------------------------------------------


class TestRunLoop:
    """run() ticks until the shutdown event is set."""

    @pytest.mark.asyncio
    async def test_shutdown_stops_loop(self) -> None:
        from collector.src.main import run

        components = _make_components()
        shutdown_event = asyncio.Event()

        async def _trigger_shutdown() -> None:
            await asyncio.sleep(0.1)
            shutdown_event.set()

        with patch(
            "collector.src.main.sample_gateway",
            AsyncMock(return_value=_make_sample()),
        ):
            trigger = asyncio.create_task(_trigger_shutdown())
            ticks = await asyncio.wait_for(
                run(
                    **components,
                    poll_interval_s=0.02,
                    shutdown_event=shutdown_event,
                ),
                timeout=5.0,
            )
            await trigger

        assert ticks >= 2
        assert components["sink"].append.call_count == ticks
        assert components["publisher"].publish.call_count == ticks

    def test_handle_signal_sets_event(self) -> None:
        from collector.src.main import _handle_signal

        event = asyncio.Event()
        _handle_signal(event)

        assert event.is_set()


# ---------------------------------------------------------------------------
# Test: async_main exit codes
# ---------------------------------------------------------------------------


def _patch_session(login_side_effect: object = None) -> MagicMock:
    """Return a patched SessionClient class whose instances are async mocks."""
    client = AsyncMock()
    client.login = AsyncMock(return_value="tok", side_effect=login_side_effect)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    session_cls = MagicMock(return_value=client)
    return session_cls


class TestAsyncMain:
    """async_main() maps startup outcomes to exit statuses."""

    @pytest.fixture(autouse=True)
    def _keep_logging(self) -> None:
        """Stop async_main from replacing the root handlers used by caplog."""
        with patch("collector.src.main.configure_logging"):
            root = logging.getLogger()
            level = root.level
            yield
            root.setLevel(level)

    @pytest.mark.asyncio
    async def test_missing_config_exits_2(self) -> None:
        from collector.src.main import async_main

        assert await async_main() == 2

    @pytest.mark.asyncio
    async def test_login_failure_exits_1(
        self,
        env_vars_required_only: dict[str, str],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        from collector.src.main import async_main

        session_cls = _patch_session(LoginError("rejected with HTTP 401"))
        with (
            patch("collector.src.session.SessionClient", session_cls),
            patch("collector.src.main.run", AsyncMock()) as mock_run,
        ):
            assert await async_main() == 1

        mock_run.assert_not_awaited()
        assert "Login failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unopenable_timeseries_exits_1(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        tmp_path: Path,
    ) -> None:
        from collector.src.main import async_main

        monkeypatch.setenv("TIMESERIES_PATH", str(tmp_path / "missing" / "s.tsv"))
        with (
            patch("collector.src.session.SessionClient", _patch_session()),
            patch("collector.src.main.run", AsyncMock()) as mock_run,
        ):
            assert await async_main() == 1

        mock_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clean_shutdown_exits_0(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        tmp_path: Path,
    ) -> None:
        from collector.src.main import async_main

        monkeypatch.setenv("TIMESERIES_PATH", str(tmp_path / "s.tsv"))
        monkeypatch.setenv("STATEFILE_PATH", str(tmp_path / "state.json"))
        with (
            patch("collector.src.session.SessionClient", _patch_session()),
            patch("collector.src.main.run", AsyncMock(return_value=3)) as mock_run,
        ):
            assert await async_main() == 0

        mock_run.assert_awaited_once()
        kwargs = mock_run.await_args.kwargs
        assert kwargs["poll_interval_s"] == 5.0
        assert kwargs["publisher"].path == tmp_path / "state.json"

    @pytest.mark.asyncio
    async def test_unexpected_failure_exits_1(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        from collector.src.main import async_main

        monkeypatch.setenv("TIMESERIES_PATH", str(tmp_path / "s.tsv"))
        with (
            patch("collector.src.session.SessionClient", _patch_session()),
            patch(
                "collector.src.main.run",
                AsyncMock(side_effect=RuntimeError("kaboom")),
            ),
        ):
            assert await async_main() == 1

        assert "Unexpected failure" in caplog.text


# ---------------------------------------------------------------------------
# Test: startup logs config summary without secrets
# ---------------------------------------------------------------------------


class TestStartupConfigLogging:
    """Config summary never contains the password."""

    def test_config_summary_masks_password(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        from collector.src.main import log_config_summary

        settings = _make_settings()

        with caplog.at_level(logging.INFO):
            log_config_summary(settings)

        assert "super-secret-password" not in caplog.text
        assert "192.168.1.50" in caplog.text
        assert "gateway_password_masked=len=21" in caplog.text
