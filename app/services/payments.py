# app/services/payments.py
"""
Stripe integration: payment-link creation for invoices and webhook
signature verification.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

import stripe

from app.errors import AuthenticationError, ExternalServiceError
from app.models.invoices import Invoice, PaymentLinkRecord

logger = logging.getLogger(__name__)

# (payload, signature header, secret) -> event dict
EventVerifier = Callable[[bytes, Optional[str], str], Dict[str, Any]]


class StripePaymentGateway:
    """Creates a product, price and payment link for an invoice."""

    def __init__(self, secret_key: str, currency: str = "usd"):
        self.secret_key = secret_key
        self.currency = currency

    def create_payment_link(self, invoice: Invoice) -> PaymentLinkRecord:
        try:
            product = stripe.Product.create(
                api_key=self.secret_key,
                name=f"Invoice {invoice.invoice_number} - {invoice.customer_name}",
            )
            price = stripe.Price.create(
                api_key=self.secret_key,
                product=product.id,
                unit_amount=invoice.total_cents,
                currency=self.currency,
            )
            link = stripe.PaymentLink.create(
                api_key=self.secret_key,
                line_items=[{"price": price.id, "quantity": 1}],
                metadata={
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                },
            )
        except stripe.StripeError as e:
            raise ExternalServiceError(
                f"Stripe request failed for {invoice.invoice_number}: {e.user_message or e}"
            ) from e

        return PaymentLinkRecord(
            product_id=product.id,
            price_id=price.id,
            payment_link_id=link.id,
            payment_link_url=link.url,
        )


def verify_stripe_event(payload: bytes, signature: Optional[str], secret: str) -> Dict[str, Any]:
    """
    Check the Stripe-Signature header against the endpoint secret and return
    the decoded event body.
    """
    if not signature:
        raise AuthenticationError("missing signature header")

    try:
        stripe.Webhook.construct_event(payload, signature, secret)
    except stripe.SignatureVerificationError as e:
        raise AuthenticationError("signature verification failed") from e
    except ValueError as e:
        raise AuthenticationError("invalid payload") from e

    return json.loads(payload)
