"""HTTP ingest writer for Timeplus cloud / onprem and timeplusd."""

from __future__ import annotations

import asyncio
import base64
import json
import posixpath
from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from timeplus_sink.config.models import OutputConfig, TargetType
from timeplus_sink.errors import (
    IngestCancelledError,
    IngestStatusError,
    TransportError,
)

logger = structlog.get_logger()

TIMEPLUS_API_VERSION = "v1beta2"
TIMEPLUSD_API_VERSION = "v1"


def build_ingest_url(
    base_url: str,
    target: TargetType,
    stream: str,
    workspace: str = "",
) -> str:
    """Return the ingest endpoint for *stream* under *base_url*.

    - timeplus:  ``{base}/{workspace}/api/v1beta2/streams/{stream}/ingest``
    - timeplusd: ``{base}/timeplusd/v1/ingest/streams/{stream}``
    """
    base = httpx.URL(base_url)
    if target == TargetType.TIMEPLUS:
        segments = [workspace, "api", TIMEPLUS_API_VERSION, "streams", stream, "ingest"]
    else:
        segments = ["timeplusd", TIMEPLUSD_API_VERSION, "ingest", "streams", stream]
    path = posixpath.join(base.path or "/", *(s for s in segments if s))
    return str(base.copy_with(path=posixpath.normpath(path)))


def build_headers(
    apikey: str | None = None,
    username: str = "",
    password: str = "",
) -> dict[str, str]:
    """Return the static request headers for every ingest call."""
    headers = {"Content-Type": "application/json"}
    if username and password:
        token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
        headers["Authorization"] = f"Basic {token}"
    if apikey:
        headers["X-Api-Key"] = apikey
    return headers


class HTTPIngestWriter:
    """Posts columnar batches to the Timeplus ingest API.

    At most ``max_in_flight`` requests are outstanding at once; further
    callers wait for a free slot. URL and headers are fixed at construction.
    """

    def __init__(self, config: OutputConfig) -> None:
        self._config = config
        self._url = build_ingest_url(
            config.url, config.target, config.stream, config.workspace
        )
        self._headers = build_headers(
            apikey=config.apikey.get_secret_value() if config.apikey else None,
            username=config.username,
            password=config.password.get_secret_value(),
        )
        self._slots = asyncio.Semaphore(config.max_in_flight)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
        )
        logger.info(
            "http_writer.started",
            target=str(config.target),
            url=self._url,
            max_in_flight=config.max_in_flight,
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    async def _acquire_slot(self) -> None:
        timeout = self._config.acquire_timeout_seconds
        if timeout is None:
            await self._slots.acquire()
            return
        try:
            async with asyncio.timeout(timeout):
                await self._slots.acquire()
        except TimeoutError as exc:
            msg = f"no ingest slot became free within {timeout}s"
            raise IngestCancelledError(msg) from exc

    async def write(
        self,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> None:
        try:
            body = json.dumps(
                {"columns": list(columns), "data": [list(r) for r in rows]},
                allow_nan=False,
            )
        except (TypeError, ValueError) as exc:
            msg = f"failed to encode ingest payload: {exc}"
            raise TransportError(msg) from exc

        await self._acquire_slot()
        try:
            async with self._client.stream(
                "POST", self._url, content=body.encode(), headers=self._headers
            ) as response:
                if not 200 <= response.status_code <= 299:
                    try:
                        await response.aread()
                        detail = response.text[:512]
                    except httpx.HTTPError:
                        detail = ""
                    raise IngestStatusError(response.status_code, detail)
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc
        finally:
            self._slots.release()

        logger.debug("http_writer.write", url=self._url, rows=len(rows))

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("http_writer.stopped", url=self._url)
