"""Timeplus output: the connect / write_batch / close lifecycle."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import Any

import structlog

from timeplus_sink.columnar import StructuredMessage, build_columnar_batch
from timeplus_sink.config.loader import build_output_config
from timeplus_sink.config.models import OutputConfig
from timeplus_sink.errors import ConfigurationError
from timeplus_sink.writers.base import Writer
from timeplus_sink.writers.factory import create_writer

logger = structlog.get_logger()


class OutputState(StrEnum):
    UNINITIALIZED = "uninitialized"
    CONNECTED = "connected"
    CLOSED = "closed"


class TimeplusOutput:
    """Batch output that forwards message batches to one Timeplus stream.

    The writer is chosen from ``config`` at construction and kept until
    :meth:`close`. Failures from the writer reach the caller unchanged; the
    output never retries.
    """

    def __init__(self, config: OutputConfig, writer: Writer | None = None) -> None:
        self._config = config
        self._writer: Writer | None = writer if writer is not None else create_writer(config)
        self._state = OutputState.UNINITIALIZED

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TimeplusOutput:
        """Validate raw settings and build the output; raises ConfigurationError."""
        return cls(build_output_config(dict(data)))

    @property
    def config(self) -> OutputConfig:
        return self._config

    @property
    def state(self) -> OutputState:
        return self._state

    async def connect(self) -> None:
        if self._writer is None:
            msg = "client not initialized"
            raise ConfigurationError(msg)
        self._state = OutputState.CONNECTED
        logger.info(
            "timeplus_output.connected",
            target=str(self._config.target),
            transport=str(self._config.transport),
            stream=self._config.stream,
        )

    async def write_batch(self, messages: Sequence[StructuredMessage]) -> None:
        """Convert *messages* to a columnar batch and deliver it."""
        if not messages:
            return

        writer = self._writer
        if writer is None:
            msg = "TimeplusOutput is closed"
            raise RuntimeError(msg)

        batch = build_columnar_batch(messages, raw_fallback=self._config.raw_fallback)
        await writer.write(batch.columns, batch.rows)
        logger.debug(
            "timeplus_output.batch_written",
            stream=self._config.stream,
            rows=len(batch.rows),
        )

    async def close(self) -> None:
        """Release the writer. Safe to call more than once.

        In-flight ``write_batch`` calls are not awaited.
        """
        if self._state == OutputState.CLOSED:
            return
        writer, self._writer = self._writer, None
        self._state = OutputState.CLOSED
        if writer is not None:
            await writer.close()
        logger.info("timeplus_output.closed", stream=self._config.stream)

    async def health(self) -> dict[str, Any]:
        return {
            "type": "timeplus",
            "status": "running" if self._state == OutputState.CONNECTED else str(self._state),
            "target": str(self._config.target),
            "transport": str(self._config.transport),
            "stream": self._config.stream,
        }
