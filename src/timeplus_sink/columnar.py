"""Turns a batch of structured messages into columns + rows."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import structlog

logger = structlog.get_logger()

RAW_COLUMN = "raw"

_UNSET: Any = object()


@runtime_checkable
class StructuredMessage(Protocol):
    """What the builder needs from a framework message."""

    def as_structured(self) -> Any:
        """Return the parsed payload; may raise if it cannot be parsed."""
        ...

    def as_bytes(self) -> bytes:
        """Return the raw payload."""
        ...


@dataclass(frozen=True)
class Message:
    """A message carrying raw bytes and, optionally, an already parsed value.

    When no structured value is given, ``as_structured`` decodes the bytes
    as JSON.
    """

    payload: bytes = b""
    structured: Any = _UNSET

    @classmethod
    def from_structured(cls, value: Any) -> Message:
        return cls(payload=json.dumps(value).encode(), structured=value)

    def as_structured(self) -> Any:
        if self.structured is not _UNSET:
            return self.structured
        return json.loads(self.payload)

    def as_bytes(self) -> bytes:
        return self.payload


@dataclass(frozen=True)
class ColumnarBatch:
    columns: list[str] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


def _as_record(message: StructuredMessage) -> dict[str, Any] | None:
    try:
        value = message.as_structured()
    except (ValueError, TypeError):
        return None
    if not isinstance(value, Mapping):
        return None
    if not all(isinstance(k, str) for k in value):
        return None
    return dict(value)


def build_columnar_batch(
    messages: Iterable[StructuredMessage],
    *,
    raw_fallback: bool = False,
) -> ColumnarBatch:
    """Build a :class:`ColumnarBatch` from messages, in order.

    Each message must resolve to a JSON object. One that does not is either
    dropped or, with ``raw_fallback``, sent as a single ``raw`` column holding
    its payload as text.

    Keys are sorted per record and the resulting column list is the one of
    the *last* record that was kept: every record in a batch is assumed to
    share the same keys, and this is not checked.
    """
    columns: list[str] = []
    rows: list[list[Any]] = []
    dropped = 0

    for message in messages:
        record = _as_record(message)
        if record is None:
            if not raw_fallback:
                dropped += 1
                continue
            record = {
                RAW_COLUMN: message.as_bytes().decode("utf-8", errors="replace")
            }

        keys = sorted(record)
        rows.append([record[key] for key in keys])
        columns = keys

    if dropped:
        logger.debug("columnar.records_dropped", dropped=dropped, kept=len(rows))
    return ColumnarBatch(columns=columns, rows=rows)
