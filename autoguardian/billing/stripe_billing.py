"""
Stripe subscription billing.

Checkout and portal sessions are created on demand; tier changes arrive
only through signed webhooks. The API key is passed on every call rather
than set on the ``stripe`` module.
"""

import logging
from typing import Any, Dict, Optional

import stripe

from autoguardian.config.loader import BillingConfig
from autoguardian.core.errors import BillingError
from autoguardian.core.requests import Identity
from autoguardian.core.usage_gate import Tier

logger = logging.getLogger(__name__)


def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj.get("metadata") or {}


class BillingService:
    """Stripe checkout, billing portal and webhook handling."""

    def __init__(self, config: BillingConfig, repository):
        self.config = config
        self.repository = repository

    def _require_key(self) -> str:
        if not self.config.enabled:
            raise BillingError("Billing is not configured. Please contact support.")
        return self.config.secret_key

    def _origin(self, origin: Optional[str]) -> str:
        return (origin or self.config.default_origin).rstrip("/")

    def create_checkout_session(
        self,
        identity: Identity,
        plan: str,
        annual: bool = False,
        origin: Optional[str] = None,
    ) -> str:
        """Start a subscription checkout for ``plan`` and return its URL.

        Creates the Stripe customer on first use and stores its id.

        Raises:
            BillingError: 400 for an unknown plan, 500 for missing prices
                or Stripe failures
        """
        prices = self.config.plans.get(plan or "")
        if prices is None:
            raise BillingError("Invalid plan selected.", status_code=400)

        price_id = prices.price_for(annual)
        if not price_id:
            raise BillingError("Price not configured. Please contact support.")

        api_key = self._require_key()
        profile = self.repository.get_profile(identity.user_id)
        customer_id = profile.stripe_customer_id if profile else None

        try:
            if not customer_id:
                customer = stripe.Customer.create(
                    api_key=api_key,
                    email=identity.email,
                    metadata={"user_id": identity.user_id},
                )
                customer_id = customer["id"]
                self.repository.set_stripe_customer(identity.user_id, customer_id)

            base = self._origin(origin)
            metadata = {"user_id": identity.user_id, "plan": plan}
            session = stripe.checkout.Session.create(
                api_key=api_key,
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=f"{base}/dashboard/plans/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base}/dashboard/plans",
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.StripeError as e:
            logger.error("Checkout error for %s: %s", identity.user_id, e)
            raise BillingError("Failed to create checkout session.") from e

        logger.info("Checkout session created for %s (%s)", identity.user_id, plan)
        return session["url"]

    def create_portal_session(self, identity: Identity, origin: Optional[str] = None) -> str:
        """Open the Stripe billing portal for the owner's customer record."""
        profile = self.repository.get_profile(identity.user_id)
        if profile is None or not profile.stripe_customer_id:
            raise BillingError("No subscription found.", status_code=400)

        api_key = self._require_key()
        try:
            session = stripe.billing_portal.Session.create(
                api_key=api_key,
                customer=profile.stripe_customer_id,
                return_url=f"{self._origin(origin)}/dashboard/plans",
            )
        except stripe.StripeError as e:
            logger.error("Portal error for %s: %s", identity.user_id, e)
            raise BillingError("Failed to open billing portal.") from e
        return session["url"]

    def construct_event(self, payload: bytes, signature: Optional[str]):
        """Verify the webhook signature and decode the event.

        Raises:
            BillingError: 400 if the signature is missing or invalid
        """
        if not signature:
            raise BillingError("No signature", status_code=400)
        if not self.config.webhook_secret:
            raise BillingError("Webhook secret not configured.")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.config.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise BillingError("Invalid signature", status_code=400) from e

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> str:
        """Verify and apply one webhook event. Returns the event type."""
        event = self.construct_event(payload, signature)
        event_type = event["type"]
        obj = event["data"]["object"]

        try:
            handler = self._handlers.get(event_type)
            if handler is not None:
                handler(self, obj)
            else:
                logger.debug("Ignoring webhook event %s", event_type)
        except Exception as e:
            logger.error("Webhook processing error for %s: %s", event_type, e)
            raise BillingError("Webhook processing failed") from e
        return event_type

    def _on_checkout_completed(self, session: Dict[str, Any]) -> None:
        metadata = _metadata(session)
        user_id = metadata.get("user_id")
        plan = metadata.get("plan")
        if not user_id or not plan:
            return

        self.repository.set_tier(user_id, Tier.parse(plan))
        if session.get("customer"):
            self.repository.set_stripe_customer(user_id, session["customer"])
        self.repository.set_subscription(user_id, session.get("subscription"))
        logger.info("User %s upgraded to %s", user_id, plan)

    def _on_subscription_updated(self, subscription: Dict[str, Any]) -> None:
        metadata = _metadata(subscription)
        user_id = metadata.get("user_id")
        if not user_id:
            return

        status = subscription.get("status")
        if status == "active":
            plan = metadata.get("plan") or Tier.PRO.value
            self.repository.set_tier(user_id, Tier.parse(plan))
            logger.info("User %s subscription active on %s", user_id, plan)
        elif status in ("past_due", "unpaid"):
            logger.warning("User %s subscription is %s", user_id, status)

    def _on_subscription_deleted(self, subscription: Dict[str, Any]) -> None:
        user_id = _metadata(subscription).get("user_id")
        if not user_id:
            return

        self.repository.set_tier(user_id, Tier.FREE)
        self.repository.set_subscription(user_id, None)
        logger.info("User %s downgraded to free", user_id)

    def _on_payment_failed(self, invoice: Dict[str, Any]) -> None:
        customer_id = invoice.get("customer")
        profile = self.repository.find_by_stripe_customer(customer_id) if customer_id else None
        if profile is not None:
            logger.warning("Payment failed for user %s", profile.user_id)

    _handlers = {
        "checkout.session.completed": _on_checkout_completed,
        "customer.subscription.updated": _on_subscription_updated,
        "customer.subscription.deleted": _on_subscription_deleted,
        "invoice.payment_failed": _on_payment_failed,
    }
