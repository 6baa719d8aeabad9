import logging
import re
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from autoguardian.core.errors import DuplicateWaitlistEntry
from autoguardian.storage.models import WaitlistEntry

from ..dependencies import get_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@router.post("/waitlist")
def join_waitlist(payload: Any = Body(None), repository=Depends(get_repository)):
    """Add an email address to the launch waitlist. Duplicates get a 409."""
    email = payload.get("email") if isinstance(payload, dict) else None
    if not email or not isinstance(email, str):
        return JSONResponse({"error": "Email is required"}, status_code=400)

    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        return JSONResponse({"error": "Please enter a valid email address"}, status_code=400)

    try:
        entry = repository.add_to_waitlist(WaitlistEntry(email=email))
    except DuplicateWaitlistEntry as e:
        return JSONResponse({"error": e.message}, status_code=e.status_code)
    except Exception:
        logger.exception("Failed to add %s to the waitlist", email)
        return JSONResponse(
            {"error": "Failed to join waitlist. Please try again."}, status_code=500
        )

    return JSONResponse(
        {"message": "Successfully joined waitlist!", "data": entry.to_dict()},
        status_code=201,
    )
