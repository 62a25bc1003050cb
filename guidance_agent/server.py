"""FastAPI server exposing the answer verification pipeline."""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pythonjsonlogger.json import JsonFormatter

from guidance_agent.config import get_settings
from guidance_agent.llm.generator import AnthropicGenerator
from guidance_agent.verification.models import (
    Decision,
    InvalidVerificationRequest,
    VerificationRequest,
    VerificationResult,
)
from guidance_agent.verification.pipeline import AnswerVerifier
from guidance_agent.verification.stats import VerificationStats

# -- logging config ------------------------------------------------------------

_json_formatter = JsonFormatter(
    fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
    rename_fields={"asctime": "timestamp", "levelname": "level"},
)

_handler = logging.StreamHandler()
_handler.setFormatter(_json_formatter)

logging.root.handlers.clear()
logging.root.addHandler(_handler)
logging.root.setLevel(logging.INFO)

logger = logging.getLogger(__name__)

# -- app -----------------------------------------------------------------------

app = FastAPI(title="Career Guidance Answer Verifier", version="0.1.0")

_settings = get_settings()
_cors_origins = [o.strip() for o in _settings.cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# One stats object per process; counts are per instance, not fleet-wide.
stats = VerificationStats()
verifier = AnswerVerifier(generator=AnthropicGenerator(), stats=stats)

# How the caller should label where the delivered text came from.
_SOURCE_BY_DECISION: dict[Decision, str] = {
    Decision.approved: "enhanced",
    Decision.revised: "enhanced_revised",
    Decision.rejected: "draft_rejected",
    Decision.fallback: "draft_fallback",
}


# -- auth middleware -----------------------------------------------------------


@app.middleware("http")
async def check_api_key(request: Request, call_next):
    """Enforce API key auth when API_KEY is configured."""
    # Let CORS preflight requests pass through without API-key checks.
    if request.method == "OPTIONS":
        return await call_next(request)

    settings = get_settings()
    if settings.api_key and request.url.path not in ("/health",):
        key = request.headers.get("X-API-Key", "")
        if key != settings.api_key:
            return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
    return await call_next(request)


# -- helpers -------------------------------------------------------------------


def _source(result: VerificationResult) -> str:
    if result.decision == Decision.revised and not any(
        revision.adopted for revision in result.revisions_applied
    ):
        return "enhanced_with_warnings"
    return _SOURCE_BY_DECISION[result.decision]


def _response(result: VerificationResult, request_id: str) -> dict:
    return {
        "request_id": request_id,
        "source": _source(result),
        "response": result.final_answer,
        "verification": result.to_payload(),
    }


# -- endpoints -----------------------------------------------------------------


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}


@app.post("/api/verify")
async def verify(req: VerificationRequest):
    """Verify a draft answer the caller already generated."""
    request_id = str(uuid.uuid4())
    try:
        result = await verifier.verify(req)
    except InvalidVerificationRequest as exc:
        return JSONResponse(status_code=422, content={"detail": str(exc)})
    except Exception:
        logger.exception("verify failed for request %s", request_id)
        return JSONResponse(
            status_code=502,
            content={"detail": "The verifier encountered an internal error."},
        )
    return _response(result, request_id)


@app.post("/api/answer")
async def answer(req: VerificationRequest):
    """Generate a draft through the guarded model call, then verify it."""
    request_id = str(uuid.uuid4())
    try:
        result = await verifier.generate_and_verify(req)
    except InvalidVerificationRequest as exc:
        return JSONResponse(status_code=422, content={"detail": str(exc)})
    except Exception:
        logger.exception("answer failed for request %s", request_id)
        return JSONResponse(
            status_code=502,
            content={"detail": "The verifier encountered an internal error."},
        )
    return _response(result, request_id)


@app.get("/api/verify/stats")
async def verification_stats():
    """Per-instance decision breakdown for operational dashboards."""
    return stats.snapshot().model_dump(mode="json", by_alias=True)
