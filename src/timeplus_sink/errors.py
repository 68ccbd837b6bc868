"""Failure taxonomy for the Timeplus output."""

from __future__ import annotations


class TimeplusSinkError(Exception):
    """Base class for every error raised by the Timeplus output."""


class ConfigurationError(TimeplusSinkError, ValueError):
    """Invalid or incomplete output configuration; fatal at construction."""


class TransportError(TimeplusSinkError):
    """An HTTP ingest call failed (network error, bad status, or no slot)."""


class IngestStatusError(TransportError):
    """The ingest endpoint answered with a non-2xx status code."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        msg = f"failed to ingest, got status code {status_code}"
        if body:
            msg += f": {body}"
        super().__init__(msg)


class IngestCancelledError(TransportError):
    """Gave up waiting for a free in-flight slot; no request was sent."""


class DriverError(TimeplusSinkError):
    """Executing or committing a native bulk insert failed."""
