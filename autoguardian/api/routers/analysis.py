"""
Analysis endpoints: symptom analysis, OBD-II lookup and quote check.

The body is decoded here rather than by FastAPI so that an unauthenticated
request is always answered with 401, whatever its body looks like.
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from autoguardian.core.errors import AutoGuardianError, QuotaExceeded
from autoguardian.core.requests import Identity

from ..dependencies import get_analysis_service, get_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

UNEXPECTED_ERROR = "An unexpected error occurred. Please try again."


def error_response(error: AutoGuardianError) -> JSONResponse:
    """Failure envelope shared by the analysis endpoints."""
    body = {"success": False, "error": error.message}
    if isinstance(error, QuotaExceeded):
        body["remainingConsultations"] = error.remaining_consultations
    return JSONResponse(body, status_code=error.status_code)


async def read_payload(request: Request) -> Any:
    """Decoded JSON body, or None when it is empty or not JSON."""
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, RecursionError):
        return None


def run_analysis(request: Request, name: str, identity: Optional[Identity], payload: Any):
    service = get_analysis_service(request)
    endpoint = request.app.state.endpoints[name]
    try:
        outcome = service.run(endpoint, identity, payload)
    except AutoGuardianError as e:
        if e.status_code >= 500:
            logger.error("%s analysis failed: %s", name, e.message)
        return error_response(e)
    except Exception:
        logger.exception("Unexpected error in %s analysis", name)
        return JSONResponse({"success": False, "error": UNEXPECTED_ERROR}, status_code=500)
    return outcome.to_body()


@router.post("/analyze/symptom")
async def analyze_symptom(request: Request, identity: Optional[Identity] = Depends(get_identity)):
    """Diagnose a free-text symptom description. Metered on the free tier."""
    payload = await read_payload(request)
    return await run_in_threadpool(run_analysis, request, "symptom", identity, payload)


@router.post("/obd")
async def lookup_obd_code(request: Request, identity: Optional[Identity] = Depends(get_identity)):
    """Explain an OBD-II trouble code for a specific vehicle."""
    payload = await read_payload(request)
    return await run_in_threadpool(run_analysis, request, "obd", identity, payload)


@router.post("/quote")
async def check_quote(request: Request, identity: Optional[Identity] = Depends(get_identity)):
    """Assess a repair quote submitted as text or as a photo."""
    payload = await read_payload(request)
    return await run_in_threadpool(run_analysis, request, "quote", identity, payload)
