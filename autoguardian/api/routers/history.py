from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from autoguardian.core.requests import Identity
from autoguardian.storage.models import RECORD_TYPES

from ..dependencies import get_identity, get_repository

router = APIRouter(prefix="/api")


@router.get("/history/{kind}")
def get_history(
    kind: str,
    limit: int = Query(20, ge=1, le=100),
    identity: Optional[Identity] = Depends(get_identity),
    repository=Depends(get_repository),
):
    """Most recent records of one kind for the signed-in owner, newest first."""
    if identity is None:
        return JSONResponse({"success": False, "error": "Please sign in."}, status_code=401)
    if kind not in RECORD_TYPES:
        return JSONResponse(
            {"success": False, "error": f"Unknown history type: {kind}"}, status_code=400
        )
    records = repository.fetch_recent_records(kind, identity.user_id, limit=limit)
    return {"success": True, "records": records}
