"""Writer factory: maps the configured transport to a concrete writer."""

from __future__ import annotations

from timeplus_sink.config.models import OutputConfig, Transport
from timeplus_sink.errors import ConfigurationError
from timeplus_sink.writers.base import Writer
from timeplus_sink.writers.http_ingest import HTTPIngestWriter
from timeplus_sink.writers.native import NativeDriverWriter

_WRITER_REGISTRY: dict[Transport, type] = {
    Transport.HTTP: HTTPIngestWriter,
    Transport.NATIVE: NativeDriverWriter,
}


def create_writer(config: OutputConfig) -> Writer:
    """Create the writer for ``config.transport``.

    Called once per output; the writer is never swapped afterwards.
    """
    cls = _WRITER_REGISTRY.get(config.transport)
    if cls is None:
        msg = f"Unknown transport: {config.transport}"
        raise ConfigurationError(msg)
    return cls(config)  # type: ignore[no-any-return]
