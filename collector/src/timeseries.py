"""
Append-only tab-separated timeseries sink.

Writes one line per tick with these tab-separated fields, in order:
timestamp (local time, YYYY-MM-DDTHH:MM:SS), percentage, grid_up
(true/false), grid, solar, powerwall and home watts. Unknown values are
written as ``null``. Every line is flushed straight away so ``tail -f`` sees
each tick as it happens.
A path of ``-`` sends the stream to stdout.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collector.src.models import Sample

logger = logging.getLogger(__name__)

STDOUT_PATH = "-"
NULL_FIELD = "null"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _field(value: int | None) -> str:
    return NULL_FIELD if value is None else str(value)


def format_record(sample: Sample) -> str:
    """Render *sample* as one newline-terminated TSV record."""
    stamp = datetime.fromtimestamp(sample.ts).strftime(TIMESTAMP_FORMAT)
    percentage = NULL_FIELD if sample.percentage is None else f"{sample.percentage:.1f}"
    fields = [
        stamp,
        percentage,
        "true" if sample.grid_up else "false",
        _field(sample.grid_w),
        _field(sample.solar_w),
        _field(sample.powerwall_w),
        _field(sample.home_w),
    ]
    return "\t".join(fields) + "\n"


class TimeseriesSink:
    """Append-only line writer for Sample records.

    Args:
        path: Output file path, or ``-`` for stdout.

    Usage::

        with TimeseriesSink("/data/timeseries.tsv") as sink:
            sink.append(sample)
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._stream: TextIO | None = None

    def __enter__(self) -> TimeseriesSink:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def path(self) -> str:
        return self._path

    def open(self) -> None:
        """Open the output stream (append mode for files).

        Raises:
            OSError: If the file cannot be opened.
        """
        if self._stream is not None:
            return
        if self._path == STDOUT_PATH:
            self._stream = sys.stdout
        else:
            self._stream = open(self._path, "a", encoding="utf-8")  # noqa: SIM115
        logger.info("Timeseries output: %s", self._path)

    def append(self, sample: Sample) -> None:
        """Write one record for *sample* and flush it.

        Raises:
            OSError: If the write or flush fails.
        """
        assert self._stream is not None, "Sink not opened. Call open() or use with."
        self._stream.write(format_record(sample))
        self._stream.flush()

    def close(self) -> None:
        """Close the output file; stdout is left open."""
        if self._stream is not None and self._stream is not sys.stdout:
            self._stream.close()
        self._stream = None
