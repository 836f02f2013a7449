import logging
from typing import Any, Dict, Optional

import stripe

from marketplace.config import settings
from marketplace.errors import InvalidSignature, InvalidWebhookPayload, UpstreamFailure

logger = logging.getLogger(__name__)

stripe.api_key = settings.stripe_secret_key


def _field(obj: Any, key: str) -> Any:
    # Works for plain dicts and StripeObjects, which are not dicts on newer SDKs
    return obj[key] if key in obj else None


class StripeClient:
    @staticmethod
    def create_payment_intent(amount: int, currency: str, metadata: Dict[str, str]):
        """Create a PaymentIntent for ``amount`` minor currency units."""
        try:
            return stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            raise UpstreamFailure("Payment provider request failed") from e

    @staticmethod
    def get_webhook_event(payload: bytes, sig_header: Optional[str], webhook_secret: str):
        """Verify and parse webhook"""
        if not sig_header:
            raise InvalidSignature("Missing stripe signature")
        try:
            event = stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
        except stripe.SignatureVerificationError:
            raise InvalidSignature("Invalid signature")
        except (ValueError, AttributeError):
            # Not JSON, or JSON that is not an object
            raise InvalidWebhookPayload()
        if "type" not in event:
            raise InvalidWebhookPayload()
        return event

    @staticmethod
    def parse_payment_intent(event) -> Dict[str, Any]:
        """Extract data from payment_intent.* events"""
        try:
            intent = event["data"]["object"]
            metadata = _field(intent, "metadata") or {}
            return {
                "payment_intent_id": _field(intent, "id"),
                "course_id": _field(metadata, "courseId"),
                "student_id": _field(metadata, "studentId"),
            }
        except (KeyError, TypeError):
            raise InvalidWebhookPayload()
