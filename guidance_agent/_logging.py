"""Structured logging decorator for external generator calls."""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from functools import wraps
from typing import Any, Callable

import httpx

from guidance_agent.verification.models import InvalidVerificationRequest

logger = logging.getLogger("guidance_agent.llm")

# Student PII keys that always get redacted to "[REDACTED]"
_PII_KEYS = frozenset({
    "name", "first_name", "last_name", "surname", "full_name",
    "email", "phone", "cell", "id_number", "student_number",
    "date_of_birth", "dob", "address", "school_name", "parent_email",
})

# Free-text keys logged only as a length summary
_TEXT_KEYS = frozenset({
    "prompt", "context", "answer", "draft_answer", "final_answer",
    "fallback_answer", "query",
})


def _sanitize_dict(data: dict[str, Any], depth: int = 0) -> dict[str, Any]:
    """Sanitize a dict by redacting PII keys and summarising free text.

    Recurses into nested dicts at depth=0; stops at depth=1.
    """
    result: dict[str, Any] = {}
    for key, value in data.items():
        if key in _PII_KEYS:
            result[key] = "[REDACTED]"
        elif key in _TEXT_KEYS:
            result[key] = f"[{len(str(value))} chars]"
        elif isinstance(value, dict) and depth < 1:
            result[key] = _sanitize_dict(value, depth=depth + 1)
        else:
            result[key] = value
    return result


def _sanitize_output(output: Any) -> str:
    """Summarise call output for logging without echoing generated text."""
    if isinstance(output, dict):
        return str(_sanitize_dict(output))[:200]
    if isinstance(output, str):
        return f"[{len(output)} chars]"
    return str(output)[:200]


def classify_error(exc: BaseException) -> str:
    """Map an exception to an error_type category.

    Categories:
        api_timeout      – asyncio or httpx timeout
        auth_error       – HTTP 401/403
        rate_limited     – HTTP 429
        provider_error   – HTTP 5xx from the model provider
        validation_error – malformed verification input
        unknown          – everything else
    """
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "api_timeout"
    if isinstance(exc, InvalidVerificationRequest):
        return "validation_error"
    status: int | None = None
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
    else:
        # Provider SDK errors (anthropic.APIStatusError and friends) expose
        # the HTTP status directly.
        candidate = getattr(exc, "status_code", None)
        if isinstance(candidate, int):
            status = candidate
    if status is not None:
        if status in (401, 403):
            return "auth_error"
        if status == 429:
            return "rate_limited"
        if status >= 500:
            return "provider_error"
    return "unknown"


def logged_call(func: Callable) -> Callable:
    """Add structured logging around an async external call.

    On error, attaches ``error_category`` metadata to the current LangSmith
    run (if one exists) so failures are visible in traces, then re-raises.
    Callers that must not see the exception wrap the call in
    ``guarded_call``.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        call_name = func.__name__
        logger.info(
            "llm_call_start",
            extra={"call": call_name, "input": _sanitize_dict(kwargs)},
        )
        start = time.monotonic()
        try:
            result = await func(*args, **kwargs)
            latency_ms = round((time.monotonic() - start) * 1000)
            logger.info(
                "llm_call_end",
                extra={
                    "call": call_name,
                    "latency_ms": latency_ms,
                    "status": "success",
                    "output_summary": _sanitize_output(result),
                },
            )
            return result
        except Exception as e:
            latency_ms = round((time.monotonic() - start) * 1000)
            error_category = classify_error(e)
            logger.error(
                "llm_call_error",
                extra={
                    "call": call_name,
                    "latency_ms": latency_ms,
                    "status": "error",
                    "error_type": type(e).__name__,
                    "error_category": error_category,
                    "error_msg": str(e),
                    "stack_trace": traceback.format_exc(),
                },
            )

            # Enrich the active LangSmith run with error metadata
            try:
                from langsmith.run_helpers import get_current_run_tree

                rt = get_current_run_tree()
                if rt is not None:
                    rt.metadata = {
                        **(rt.metadata or {}),
                        "error_type": type(e).__name__,
                        "error_category": error_category,
                        "error_msg": str(e),
                        "call_name": call_name,
                    }
            except Exception:
                pass  # tracing enrichment is best-effort

            raise

    return wrapper
