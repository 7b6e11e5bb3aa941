"""
Stripe client wrapper: subscription lookups and webhook verification
"""
import json
import logging
from typing import Any, Dict, Optional

import stripe

from app.core.config import settings

logger = logging.getLogger(__name__)


class WebhookSignatureError(ValueError):
    """Raised when a webhook payload cannot be verified or parsed."""


def _to_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict) and not hasattr(obj, "to_dict"):
        return obj
    return obj.to_dict() if hasattr(obj, "to_dict") else dict(obj)


class StripeService:
    """Thin wrapper over the Stripe SDK returning plain dicts."""

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def retrieve_subscription(self, stripe_subscription_id: str) -> Dict[str, Any]:
        """Fetch the provider's current view of a subscription."""
        if not self.is_configured:
            raise RuntimeError("STRIPE_SECRET_KEY is not configured")
        subscription = stripe.Subscription.retrieve(stripe_subscription_id, api_key=self.api_key)
        return _to_dict(subscription)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and parse a webhook payload.

        Without a configured webhook secret the payload is parsed as plain
        JSON (local development only).
        """
        if not self.webhook_secret:
            logger.warning("STRIPE_WEBHOOK_SECRET not configured, skipping signature verification")
            try:
                return json.loads(payload)
            except ValueError as e:
                raise WebhookSignatureError(f"Invalid payload: {e}") from e

        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Invalid signature: {e}") from e
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}") from e
        return _to_dict(event)


# Global stripe service instance
stripe_service = StripeService()
