"""
Gateway telemetry collector package.

Logs in to a local energy gateway over HTTPS, samples grid status, battery
state of charge and power flows on a fixed cadence, appends each sample to a
tab-separated timeseries stream and atomically publishes the latest sample as
a JSON state file.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""
