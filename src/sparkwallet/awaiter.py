from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable, Collection
from typing import Any, TypeVar

from .errors import AwaitError, AwaitTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _identity(item: Any) -> Any:
    return item


async def await_terminal_state(
    initial: T | None,
    subscribe: Callable[[], AsyncGenerator[T, None]],
    completion_states: Collection[Any],
    timeout_secs: float,
    *,
    state_of: Callable[[T], Any] = _identity,
    label: str = "status",
) -> T:
    """Wait until a status stream reaches one of *completion_states*.

    If *initial* is already terminal it is returned without subscribing.
    Otherwise the first streamed item whose ``state_of(item)`` is terminal is
    returned and the rest of the stream is ignored.

    Raises :class:`AwaitTimeoutError` after *timeout_secs*, :class:`AwaitError`
    if the stream ends first, and re-raises anything the stream raises. The
    stream is closed exactly once whichever way this returns.
    """
    if initial is not None and state_of(initial) in completion_states:
        return initial

    stream = subscribe()
    timer = asyncio.timeout(timeout_secs)
    try:
        async with timer:
            async for item in stream:
                state = state_of(item)
                logger.debug("%s is now %s", label, state)
                if state in completion_states:
                    return item
    except TimeoutError as exc:
        if not timer.expired():
            raise
        raise AwaitTimeoutError(label, completion_states, timeout_secs) from exc
    finally:
        await stream.aclose()
    raise AwaitError(f"{label} subscription completed without reaching a terminal state.")
