"""Native protocol writer for timeplusd, backed by ``proton_driver``."""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from collections.abc import Sequence
from typing import Any

import structlog

from timeplus_sink.config.models import OutputConfig
from timeplus_sink.errors import DriverError

logger = structlog.get_logger()

DIAL_TIMEOUT_SECONDS = 5


def build_insert_statement(stream: str, columns: Sequence[str]) -> str:
    """``INSERT INTO {stream} ({c1,c2,...}) VALUES`` with driver-side rows."""
    return f"INSERT INTO {stream} ({','.join(columns)}) VALUES"  # noqa: S608


class NativeDriverWriter:
    """Inserts columnar batches into a timeplusd stream.

    Every call runs inside one transaction scope: all rows go out as one
    parameterized insert and are committed together. A failing row aborts the
    call right away with no rollback; that connection is dropped from the
    idle pool and the state of its transaction is left to the server.

    The blocking driver runs in the default executor. Cancelling the awaiting
    task does not stop an insert that has already started.
    """

    def __init__(self, config: OutputConfig) -> None:
        self._config = config
        self._stream = config.stream
        self._idle: deque[Any] = deque()
        self._lock = threading.Lock()
        self._idle.append(self._connect())
        logger.info(
            "native_writer.connected",
            host=config.native_host,
            port=config.native_port,
            stream=self._stream,
        )

    def _connect(self) -> Any:
        try:
            from proton_driver import dbapi
        except ImportError:
            msg = (
                "proton-driver is required for the native transport. "
                "Install it with: pip install timeplus-sink[native]"
            )
            raise ImportError(msg) from None

        try:
            return dbapi.connect(
                host=self._config.native_host,
                port=self._config.native_port,
                user=self._config.username or "default",
                password=self._config.password.get_secret_value(),
                connect_timeout=DIAL_TIMEOUT_SECONDS,
            )
        except dbapi.Error as exc:
            msg = f"failed to connect to {self._config.native_host}:{self._config.native_port}: {exc}"
            raise DriverError(msg) from exc

    def _checkout(self) -> Any:
        with self._lock:
            if self._idle:
                return self._idle.pop()
        return self._connect()

    def _checkin(self, conn: Any) -> None:
        with self._lock:
            if len(self._idle) < self._config.max_idle_conns:
                self._idle.append(conn)
                return
        conn.close()

    def _write_sync(
        self,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> None:
        conn = self._checkout()
        statement = build_insert_statement(self._stream, columns)
        try:
            scope = conn.cursor()
        except Exception as exc:
            msg = f"failed to open transaction on {self._stream}: {exc}"
            raise DriverError(msg) from exc

        try:
            if rows:
                # The driver builds the whole block client-side before
                # sending, so a bad row fails the insert with nothing stored.
                scope.executemany(statement, [list(row) for row in rows])
        except Exception as exc:
            # The transaction is left as-is; no rollback is issued.
            msg = f"failed to insert {len(rows)} rows into {self._stream}: {exc}"
            raise DriverError(msg) from exc
        finally:
            scope.close()

        try:
            conn.commit()
        except Exception as exc:
            conn.close()
            msg = f"failed to commit insert into {self._stream}: {exc}"
            raise DriverError(msg) from exc
        self._checkin(conn)

    async def write(
        self,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write_sync, columns, rows)
        logger.debug("native_writer.write", stream=self._stream, rows=len(rows))

    async def close(self) -> None:
        with self._lock:
            conns = list(self._idle)
            self._idle.clear()
        for conn in conns:
            conn.close()
        logger.info("native_writer.stopped", stream=self._stream)
