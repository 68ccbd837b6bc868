"""Writer protocol shared by the HTTP and native transports."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Writer(Protocol):
    """Delivers one columnar batch to a Timeplus stream.

    A call either delivers the whole batch or raises; there is no partial
    success and no retry. Implementations must not mutate their inputs.
    """

    async def write(
        self,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> None:
        """Deliver ``rows``, each aligned positionally with ``columns``."""
        ...

    async def close(self) -> None:
        """Release transport resources."""
        ...
