"""Unit tests for the native protocol writer."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest

from timeplus_sink.config.models import OutputConfig
from timeplus_sink.errors import DriverError
from timeplus_sink.writers.native import NativeDriverWriter, build_insert_statement


class _DBError(Exception):
    pass


@pytest.fixture
def dbapi() -> Iterator[MagicMock]:
    mock_dbapi = MagicMock()
    mock_dbapi.Error = _DBError
    mock_pkg = MagicMock()
    mock_pkg.dbapi = mock_dbapi
    with patch.dict(
        "sys.modules", {"proton_driver": mock_pkg, "proton_driver.dbapi": mock_dbapi}
    ):
        yield mock_dbapi


def _make_writer(max_idle_conns: int = 2) -> NativeDriverWriter:
    cfg = OutputConfig(
        target="timeplusd",
        transport="native",
        url="proton.local",
        stream="events",
        username="default",
        password="pw",
        max_idle_conns=max_idle_conns,
    )
    return NativeDriverWriter(cfg)


def test_build_insert_statement():
    assert (
        build_insert_statement("events", ["a", "b", "c"])
        == "INSERT INTO events (a,b,c) VALUES"
    )


def test_connects_at_construction(dbapi: MagicMock):
    _make_writer()
    dbapi.connect.assert_called_once_with(
        host="proton.local",
        port=8463,
        user="default",
        password="pw",
        connect_timeout=5,
    )


def test_connect_failure_raises_driver_error(dbapi: MagicMock):
    dbapi.connect.side_effect = _DBError("connection refused")
    with pytest.raises(DriverError, match="proton.local:8463"):
        _make_writer()


def test_missing_driver_raises_import_error():
    with (
        patch.dict("sys.modules", {"proton_driver": None}),
        pytest.raises(ImportError, match="proton-driver"),
    ):
        _make_writer()


@pytest.mark.asyncio
class TestNativeDriverWriter:
    async def test_inserts_all_rows_in_one_block_then_commits(self, dbapi: MagicMock):
        conn = dbapi.connect.return_value
        cursor = conn.cursor.return_value
        writer = _make_writer()

        await writer.write(["col1", "col2"], [("hello", 5), ("world", 10)])

        cursor.executemany.assert_called_once_with(
            "INSERT INTO events (col1,col2) VALUES", [["hello", 5], ["world", 10]]
        )
        cursor.execute.assert_not_called()
        cursor.close.assert_called_once()
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()

    async def test_row_failure_stops_without_commit_or_rollback(
        self, dbapi: MagicMock
    ):
        conn = dbapi.connect.return_value
        cursor = conn.cursor.return_value
        cursor.executemany.side_effect = RuntimeError("type mismatch")
        writer = _make_writer()

        with pytest.raises(DriverError, match="3 rows") as exc_info:
            await writer.write(["a"], [[1], ["bad"], [3]])

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert cursor.executemany.call_count == 1
        cursor.close.assert_called_once()
        conn.commit.assert_not_called()
        conn.rollback.assert_not_called()

    async def test_empty_rows_commit_without_insert(self, dbapi: MagicMock):
        conn = dbapi.connect.return_value
        cursor = conn.cursor.return_value
        writer = _make_writer()

        await writer.write([], [])

        cursor.executemany.assert_not_called()
        conn.commit.assert_called_once()

    async def test_commit_failure(self, dbapi: MagicMock):
        conn = dbapi.connect.return_value
        conn.commit.side_effect = [RuntimeError("commit failed"), None]
        writer = _make_writer()

        with pytest.raises(DriverError, match="commit"):
            await writer.write(["a"], [[1]])

        conn.close.assert_called_once()
        await writer.write(["a"], [[2]])
        assert dbapi.connect.call_count == 2

    async def test_connection_reused_after_success(self, dbapi: MagicMock):
        writer = _make_writer()
        await writer.write(["a"], [[1]])
        await writer.write(["a"], [[2]])
        assert dbapi.connect.call_count == 1

    async def test_failed_connection_not_reused(self, dbapi: MagicMock):
        failed = MagicMock()
        failed.cursor.return_value.executemany.side_effect = RuntimeError("boom")
        fresh = MagicMock()
        dbapi.connect.side_effect = [failed, fresh]
        writer = _make_writer()

        with pytest.raises(DriverError):
            await writer.write(["a"], [[1]])
        await writer.write(["a"], [[2]])

        assert dbapi.connect.call_count == 2
        fresh.commit.assert_called_once()
        failed.close.assert_not_called()

    async def test_no_idle_connections_kept(self, dbapi: MagicMock):
        conn = dbapi.connect.return_value
        writer = _make_writer(max_idle_conns=0)
        await writer.write(["a"], [[1]])
        conn.close.assert_called_once()

    async def test_close_releases_idle_connections(self, dbapi: MagicMock):
        conn = dbapi.connect.return_value
        writer = _make_writer()
        await writer.close()
        conn.close.assert_called_once()


@pytest.mark.asyncio
async def test_bad_row_sends_nothing_through_real_driver():
    """A row the driver rejects must not let earlier rows reach the server."""
    client_module = pytest.importorskip("proton_driver.client")
    sent: list[tuple[str, list[list[object]]]] = []

    def _execute(self, query, params=None, *args, **kwargs):
        rows = [list(r) for r in params or []]
        if any("bad" in row for row in rows):
            raise ValueError("cannot convert 'bad' to int32")
        sent.append((query, rows))
        return len(rows)

    with patch.object(client_module.Client, "execute", _execute):
        writer = _make_writer()
        with pytest.raises(DriverError):
            await writer.write(["a"], [[1], ["bad"], [3]])
        await writer.close()

    assert sent == []
