"""Guarded invocation: one bounded attempt at an external call, with a fallback.

The wrapper never raises for a failed or slow operation. It always returns a
``GuardedResult`` whose ``value`` is either the operation's result
(``success=True``) or the caller's fallback (``success=False``), never a mix
of the two. Retrying is the caller's business.

On timeout the operation is, by default, abandoned rather than cancelled: it
keeps running in the background and its eventual outcome is only logged.
Pass ``cancel_on_timeout=True`` to cancel it instead and free its resources.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel

from guidance_agent._logging import classify_error

logger = logging.getLogger("guidance_agent.llm.guarded")

T = TypeVar("T")

# Abandoned tasks are held here until they finish so they are not
# garbage-collected mid-flight.
_background_tasks: set[asyncio.Task] = set()


class GuardedResult(BaseModel, Generic[T]):
    """Outcome of one guarded call."""

    success: bool
    value: T
    error: str | None = None
    error_category: str | None = None
    timed_out: bool = False
    latency_ms: int = 0


def _log_abandoned_outcome(name: str, task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(
            "guarded_call_abandoned_error",
            extra={"operation": name, "error_type": type(exc).__name__},
        )
    else:
        logger.info("guarded_call_abandoned_completed", extra={"operation": name})


async def guarded_call(
    operation: Callable[[], Awaitable[T]],
    fallback: T,
    *,
    timeout_s: float,
    name: str = "external_call",
    cancel_on_timeout: bool = False,
) -> GuardedResult[T]:
    """Run ``operation`` once within ``timeout_s`` seconds.

    Args:
        operation: Zero-argument callable returning an awaitable. It may also
            raise synchronously; that counts as a failure like any other.
        fallback: Value returned when the operation does not succeed.
        timeout_s: Finite wait bound in seconds.
        name: Operation label for logs.
        cancel_on_timeout: Cancel the in-flight task on timeout instead of
            leaving it to finish in the background.
    """
    if timeout_s <= 0:
        raise ValueError("timeout_s must be positive")

    start = time.monotonic()
    task: asyncio.Future[Any] | None = None
    try:
        task = asyncio.ensure_future(operation())
        value = await asyncio.wait_for(asyncio.shield(task), timeout=timeout_s)
    except asyncio.TimeoutError:
        latency_ms = round((time.monotonic() - start) * 1000)
        if cancel_on_timeout:
            task.cancel()
        else:
            _background_tasks.add(task)
            task.add_done_callback(lambda t: _log_abandoned_outcome(name, t))
        logger.warning(
            "guarded_call_timeout",
            extra={
                "operation": name,
                "timeout_s": timeout_s,
                "latency_ms": latency_ms,
                "cancelled": cancel_on_timeout,
            },
        )
        return GuardedResult(
            success=False,
            value=fallback,
            error=f"{name} timed out after {timeout_s}s",
            error_category="api_timeout",
            timed_out=True,
            latency_ms=latency_ms,
        )
    except asyncio.CancelledError:
        # The caller itself is being cancelled; do not swallow that.
        if task is not None and not task.done():
            task.cancel()
        raise
    except Exception as e:
        latency_ms = round((time.monotonic() - start) * 1000)
        category = classify_error(e)
        logger.warning(
            "guarded_call_failed",
            extra={
                "operation": name,
                "latency_ms": latency_ms,
                "error_type": type(e).__name__,
                "error_category": category,
                "error_msg": str(e),
            },
        )
        return GuardedResult(
            success=False,
            value=fallback,
            error=str(e) or type(e).__name__,
            error_category=category,
            latency_ms=latency_ms,
        )

    latency_ms = round((time.monotonic() - start) * 1000)
    logger.info(
        "guarded_call_success",
        extra={"operation": name, "latency_ms": latency_ms},
    )
    return GuardedResult(success=True, value=value, latency_ms=latency_ms)
