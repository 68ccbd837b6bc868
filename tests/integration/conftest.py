"""Fixtures for tests against a running timeplusd."""

from __future__ import annotations

import os

import httpx
import pytest

TIMEPLUSD_URL = os.environ.get("TIMEPLUSD_URL", "")
TIMEPLUSD_STREAM = os.environ.get("TIMEPLUSD_STREAM", "rp_integration")


@pytest.fixture(scope="session")
def timeplusd_url() -> str:
    """Base URL of a reachable timeplusd, or skip the test."""
    if not TIMEPLUSD_URL:
        pytest.skip("TIMEPLUSD_URL not set")
    try:
        httpx.get(TIMEPLUSD_URL, timeout=5)
    except httpx.HTTPError as exc:
        pytest.skip(f"timeplusd not reachable at {TIMEPLUSD_URL}: {exc}")
    return TIMEPLUSD_URL


@pytest.fixture(scope="session")
def stream() -> str:
    return TIMEPLUSD_STREAM
