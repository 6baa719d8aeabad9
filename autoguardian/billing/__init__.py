"""
Subscription billing through Stripe.
"""

from .stripe_billing import BillingService

__all__ = ["BillingService"]
