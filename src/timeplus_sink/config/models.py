"""Pydantic configuration models for the Timeplus output."""

from __future__ import annotations

from enum import StrEnum
from typing import Self

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

DEFAULT_TIMEPLUSD_PORT = 8463


class TargetType(StrEnum):
    """Supported ingest targets."""

    TIMEPLUS = "timeplus"
    TIMEPLUSD = "timeplusd"


class Transport(StrEnum):
    """How batches travel to the target."""

    HTTP = "http"
    NATIVE = "native"


class OutputConfig(BaseModel):
    """Configuration for a single Timeplus output.

    ``target`` picks the ingest variant and ``transport`` picks the writer:

    - ``timeplus`` (cloud / onprem): HTTP only, ``workspace`` is required.
    - ``timeplusd``: HTTP ingest API, or the native protocol on ``port``.

    Instances are frozen; one is built per output and handed to the writer.
    """

    model_config = ConfigDict(frozen=True)

    target: TargetType = TargetType.TIMEPLUS
    transport: Transport = Transport.HTTP
    url: str
    # Native transport only; defaults to DEFAULT_TIMEPLUSD_PORT.
    port: int | None = Field(default=None, ge=1, le=65535)
    workspace: str = ""
    stream: str = Field(min_length=1)
    apikey: SecretStr | None = None
    username: str = ""
    password: SecretStr = SecretStr("")

    # -- HTTP transport --------------------------------------------------------
    max_in_flight: int = Field(default=64, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    # None waits for a slot until the calling task is cancelled.
    acquire_timeout_seconds: float | None = Field(default=None, gt=0)

    # -- Native transport ------------------------------------------------------
    max_idle_conns: int = Field(default=2, ge=0)

    # Messages that are not JSON objects become {"raw": <payload>} instead of
    # being dropped.
    raw_fallback: bool = False

    @model_validator(mode="after")
    def check_target_requirements(self) -> Self:
        """Validate target/transport combinations."""
        if self.target == TargetType.TIMEPLUS:
            if not self.workspace:
                msg = "workspace is required when target is 'timeplus'"
                raise ValueError(msg)
            if self.transport == Transport.NATIVE:
                msg = "native transport is only supported when target is 'timeplusd'"
                raise ValueError(msg)
        return self

    @property
    def native_host(self) -> str:
        """Host name for the native protocol, taken from ``url``."""
        if "://" in self.url:
            return httpx.URL(self.url).host
        return self.url.split(":", 1)[0].rstrip("/")

    @property
    def native_port(self) -> int:
        return self.port if self.port is not None else DEFAULT_TIMEPLUSD_PORT
