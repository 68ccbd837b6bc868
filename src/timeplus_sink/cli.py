"""Typer CLI for the Timeplus sink."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from timeplus_sink.columnar import Message
from timeplus_sink.config.loader import load_output_config
from timeplus_sink.config.models import OutputConfig, Transport
from timeplus_sink.errors import DriverError, TimeplusSinkError, TransportError
from timeplus_sink.output import TimeplusOutput
from timeplus_sink.writers.http_ingest import build_ingest_url

console = Console()
app = typer.Typer(name="timeplus-sink", help="Forward JSON records to Timeplus")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
) -> None:
    processors: list[Any] = [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.INFO
        ),
    )


def _load(config_path: str) -> OutputConfig:
    path = Path(config_path)
    if not path.exists():
        console.print(f"[red]Config file not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        return load_output_config(path)
    except TimeplusSinkError as exc:
        console.print(f"[red]Validation error:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc


def _read_batches(path: Path, batch_size: int) -> Iterator[list[Message]]:
    batch: list[Message] = []
    with path.open("rb") as f:
        for line in f:
            record = line.strip()
            if not record:
                continue
            batch.append(Message(payload=record))
            if len(batch) >= batch_size:
                yield batch
                batch = []
    if batch:
        yield batch


@app.command()
def validate(
    config_path: str = typer.Argument(..., help="Path to output YAML"),
) -> None:
    """Validate an output configuration file."""
    config = _load(config_path)
    console.print(f"[green]Valid[/green]: stream={config.stream}")
    console.print(f"  target: {config.target}")
    console.print(f"  transport: {config.transport}")
    if config.transport == Transport.NATIVE:
        console.print(f"  address: {config.native_host}:{config.native_port}")
    else:
        url = build_ingest_url(config.url, config.target, config.stream, config.workspace)
        console.print(f"  url: {url}")
        console.print(f"  max_in_flight: {config.max_in_flight}")


@app.command()
def send(
    config_path: str = typer.Argument(..., help="Path to output YAML"),
    input_path: str = typer.Argument(..., help="Newline-delimited JSON records"),
    batch_size: int = typer.Option(100, "--batch-size", min=1, help="Records per batch"),
    retries: int = typer.Option(0, "--retries", min=0, help="Retries per failed batch"),
) -> None:
    """Send newline-delimited JSON records to the configured stream."""
    config = _load(config_path)
    source = Path(input_path)
    if not source.exists():
        console.print(f"[red]Input file not found: {source}[/red]")
        raise typer.Exit(1)

    async def _send() -> tuple[int, int]:
        output = TimeplusOutput(config)
        await output.connect()

        @retry(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential_jitter(initial=0.5, max=10.0),
            retry=retry_if_exception_type((TransportError, DriverError)),
            reraise=True,
        )
        async def _write(batch: list[Message]) -> None:
            await output.write_batch(batch)

        batches = records = 0
        try:
            for batch in _read_batches(source, batch_size):
                await _write(batch)
                batches += 1
                records += len(batch)
        finally:
            await output.close()
        return batches, records

    try:
        batches, records = asyncio.run(_send())
    except TimeplusSinkError as exc:
        console.print(f"[red]Send failed:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc
    console.print(
        f"[green]Sent[/green] {records} records in {batches} batches to {config.stream}"
    )


@app.command()
def health(
    config_path: str = typer.Argument(..., help="Path to output YAML"),
) -> None:
    """Connect the output and report its status."""
    config = _load(config_path)

    async def _health() -> dict[str, Any]:
        output = TimeplusOutput(config)
        try:
            await output.connect()
            return await output.health()
        finally:
            await output.close()

    try:
        status = asyncio.run(_health())
    except TimeplusSinkError as exc:
        console.print(f"[red]Health check failed:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc

    table = Table(title="Timeplus Output")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in status.items():
        table.add_row(key, str(value))
    console.print(table)
