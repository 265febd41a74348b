"""
Payment gateway client. The gateway protocol itself is opaque:
create an intent for an amount, then confirm it with payment details.
"""
import logging
from typing import Any, Dict, Optional

from config import settings
from models import PaymentConfirmation
from services.errors import PaymentNotConfirmed, ValidationError
from utils.http_client import http_client

logger = logging.getLogger(__name__)

PAYMENT_INTENT_PATH = "/api/payments/intent"
PAYMENT_CONFIRM_PATH = "/api/payments/confirm"

SUCCEEDED = "succeeded"


def to_minor_units(amount: float) -> int:
    """Dollars to cents."""
    return int(round(amount * 100))


class PaymentGateway:
    """Creates and confirms payment intents through the backend."""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.backend_base_url).rstrip("/")

    async def create_intent(self, amount: float) -> str:
        """
        Create a payment intent.

        Returns:
            Opaque client secret

        Raises:
            ValidationError: amount is not positive
            PaymentNotConfirmed: gateway did not return a client secret
        """
        if amount <= 0:
            raise ValidationError("Amount must be a positive number")

        data = await http_client.post_json(
            f"{self.base_url}{PAYMENT_INTENT_PATH}",
            {"amount": to_minor_units(amount), "currency": settings.currency.lower()},
        )

        client_secret = data.get("clientSecret") if isinstance(data, dict) else None
        if not client_secret:
            logger.warning(f"No client secret returned for amount {amount:.2f}")
            raise PaymentNotConfirmed("No client secret returned")

        return client_secret

    async def confirm(self, client_secret: str, payment_details: Dict[str, Any]) -> PaymentConfirmation:
        """Confirm an intent. Failures are reported in the result, not raised."""
        data = await http_client.post_json(
            f"{self.base_url}{PAYMENT_CONFIRM_PATH}",
            {"clientSecret": client_secret, "paymentDetails": payment_details},
        )

        if not isinstance(data, dict):
            return PaymentConfirmation(
                success=False,
                client_secret=client_secret,
                error="Payment gateway unreachable",
            )

        status = data.get("status")
        amount = data.get("amount")
        confirmation = PaymentConfirmation(
            success=status == SUCCEEDED,
            client_secret=client_secret,
            amount=amount / 100 if isinstance(amount, (int, float)) else None,
            error=None if status == SUCCEEDED else (data.get("error") or f"Payment {status or 'failed'}"),
        )

        logger.info(f"Payment confirmation: {status}")
        return confirmation

    async def pay(self, amount: float, payment_details: Dict[str, Any]) -> PaymentConfirmation:
        """Create an intent for amount and confirm it in one go."""
        client_secret = await self.create_intent(amount)
        return await self.confirm(client_secret, payment_details)


# Global gateway instance
payment_gateway = PaymentGateway()
