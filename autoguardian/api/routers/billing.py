import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from autoguardian.core.errors import BillingError
from autoguardian.core.requests import Identity

from ..dependencies import get_billing, get_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stripe")


class CheckoutRequest(BaseModel):
    plan: Optional[str] = None
    annual: bool = False


def _billing_error(error: BillingError) -> JSONResponse:
    return JSONResponse({"error": error.message}, status_code=error.status_code)


@router.post("/checkout")
def create_checkout(
    request: Request,
    body: CheckoutRequest,
    identity: Optional[Identity] = Depends(get_identity),
    billing=Depends(get_billing),
):
    """Start a Stripe subscription checkout for the signed-in owner."""
    if identity is None:
        return JSONResponse({"error": "Please sign in to upgrade."}, status_code=401)
    try:
        url = billing.create_checkout_session(
            identity, body.plan, annual=body.annual, origin=request.headers.get("origin")
        )
    except BillingError as e:
        return _billing_error(e)
    return {"url": url}


@router.post("/portal")
def open_portal(
    request: Request,
    identity: Optional[Identity] = Depends(get_identity),
    billing=Depends(get_billing),
):
    """Open the Stripe billing portal for the signed-in owner."""
    if identity is None:
        return JSONResponse({"error": "Please sign in."}, status_code=401)
    try:
        url = billing.create_portal_session(identity, origin=request.headers.get("origin"))
    except BillingError as e:
        return _billing_error(e)
    return {"url": url}


@router.post("/webhook")
async def stripe_webhook(request: Request, billing=Depends(get_billing)):
    """Apply a signed Stripe event to the owner's tier."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        await run_in_threadpool(billing.handle_webhook, payload, signature)
    except BillingError as e:
        return _billing_error(e)
    return {"received": True}
