"""
Collector daemon main loop for the gateway telemetry pipeline.

Logs in to the gateway once, then runs a single drift-correcting scheduler
loop. Each tick:

1. samples the gateway (three API calls) into a Sample,
2. appends one TSV record to the timeseries stream,
3. atomically replaces the JSON state file.

A failed append or publish is logged and does not stop the tick or the loop.
Graceful shutdown on SIGTERM/SIGINT sets a shared asyncio.Event; the tick in
progress finishes and the process exits with status 0. Startup failures
(bad configuration, failed login, unwritable timeseries path) and any
unexpected exception exit non-zero.

Structured JSON logging goes to stderr, so the timeseries stream can use
stdout.

CHANGELOG:
- 2026-10-18: Share secret masking with the session module
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import ValidationError

from collector.src.publisher import PublishError
from collector.src.sampler import sample as sample_gateway
from collector.src.scheduler import PeriodicScheduler
from collector.src.session import masked_secret

if TYPE_CHECKING:
    from collector.src.models import Sample
    from collector.src.publisher import StatePublisher
    from collector.src.session import SessionClient
    from collector.src.timeseries import TimeseriesSink

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging for the collector daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup, masking the gateway password.

    Args:
        settings: A CollectorSettings instance (or any object with the same
            attrs).
    """
    logger.info(
        "Collector starting with config: "
        "gateway_host=%s, poll_interval_s=%s, request_timeout_s=%s, "
        "statefile_path=%s, timeseries_path=%s, log_level=%s, "
        "gateway_password_masked=%s",
        settings.gateway_host,  # type: ignore[attr-defined]
        settings.poll_interval_s,  # type: ignore[attr-defined]
        settings.request_timeout_s,  # type: ignore[attr-defined]
        settings.statefile_path,  # type: ignore[attr-defined]
        settings.timeseries_path,  # type: ignore[attr-defined]
        settings.log_level,  # type: ignore[attr-defined]
        masked_secret(settings.gateway_password),  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Single tick (easily testable)
# ---------------------------------------------------------------------------


async def _tick_once(
    *,
    client: SessionClient,
    sink: TimeseriesSink,
    publisher: StatePublisher,
) -> Sample:
    """Execute one sample -> append -> publish cycle.

    Timeseries and state-file failures are logged and contained so the other
    sink still gets the sample. Anything else propagates.

    Args:
        client: Logged-in gateway session.
        sink: Open timeseries sink.
        publisher: State file publisher.

    Returns:
        The sample taken during this tick.
    """
    sample = await sample_gateway(client)

    try:
        sink.append(sample)
    except OSError:
        logger.error("Timeseries append failed", exc_info=True)

    try:
        publisher.publish(sample.to_state_document())
    except PublishError:
        logger.error("State publish failed", exc_info=True)

    logger.info(
        "Tick: percentage=%s grid_up=%s grid=%s solar=%s powerwall=%s home=%s",
        sample.percentage,
        sample.grid_up,
        sample.grid_w,
        sample.solar_w,
        sample.powerwall_w,
        sample.home_w,
    )
    return sample


# ---------------------------------------------------------------------------
# Loop runner
# ---------------------------------------------------------------------------


async def run(
    *,
    client: SessionClient,
    sink: TimeseriesSink,
    publisher: StatePublisher,
    poll_interval_s: float,
    shutdown_event: asyncio.Event,
) -> int:
    """Run the sampling loop until shutdown_event is set.

    Returns:
        The number of completed ticks.
    """
    scheduler = PeriodicScheduler(poll_interval_s, shutdown_event=shutdown_event)

    async def _tick() -> None:
        await _tick_once(client=client, sink=sink, publisher=publisher)

    return await scheduler.run(_tick)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> int:
    """Async entrypoint: load config, log in, run the loop.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.

    Returns:
        Process exit status.
    """
    configure_logging()

    from collector.src.config import CollectorSettings
    from collector.src.publisher import StatePublisher
    from collector.src.session import LoginError, SessionClient
    from collector.src.timeseries import TimeseriesSink

    try:
        settings = CollectorSettings()
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR

    logging.getLogger().setLevel(settings.log_level)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    async with SessionClient(
        settings.gateway_host,
        settings.gateway_password,
        timeout_s=settings.request_timeout_s,
    ) as client:
        try:
            await client.login()
        except LoginError as exc:
            logger.error("Login failed: %s", exc)
            return EXIT_FAILURE

        sink = TimeseriesSink(settings.timeseries_path)
        try:
            sink.open()
        except OSError as exc:
            logger.error("Cannot open timeseries output: %s", exc)
            return EXIT_FAILURE

        try:
            await run(
                client=client,
                sink=sink,
                publisher=StatePublisher(settings.statefile_path),
                poll_interval_s=settings.poll_interval_s,
                shutdown_event=shutdown_event,
            )
        except Exception:
            logger.critical("Unexpected failure, exiting", exc_info=True)
            return EXIT_FAILURE
        finally:
            sink.close()

    logger.info("Shutdown complete")
    return EXIT_OK


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the collector daemon."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
