# app/services/reconciler.py

import logging
from typing import NamedTuple, Optional

from app.db.store import InvoiceStore
from app.errors import ConfigurationError
from app.services.payments import EventVerifier, verify_stripe_event

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


class ReconcileResult(NamedTuple):
    event_type: Optional[str]
    handled: bool  # event type is one we act on
    applied: bool  # an invoice actually moved to paid


class PaymentReconciler:
    """
    Applies Stripe webhook deliveries to the invoice store.

    Stripe delivers at least once, so the same checkout event can arrive more
    than once; the store only pays invoices that are pending or overdue.
    """

    def __init__(
        self,
        store: InvoiceStore,
        webhook_secret: Optional[str],
        verify: EventVerifier = verify_stripe_event,
    ):
        self.store = store
        self.webhook_secret = webhook_secret
        self.verify = verify

    def handle(self, payload: bytes, signature: Optional[str]) -> ReconcileResult:
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured")
            raise ConfigurationError("webhook secret not configured")

        # Raises AuthenticationError before anything in the payload is trusted
        event = self.verify(payload, signature, self.webhook_secret)

        event_type = event.get("type")
        if event_type != CHECKOUT_COMPLETED:
            logger.debug("Ignoring webhook event %s", event_type)
            return ReconcileResult(event_type, False, False)

        session = (event.get("data") or {}).get("object") or {}
        payment_link_id = session.get("payment_link")
        checkout_session_id = session.get("id")

        if not payment_link_id:
            logger.info("Checkout %s has no payment link; ignoring", checkout_session_id)
            return ReconcileResult(event_type, True, False)

        applied = self.store.mark_paid_by_payment_link(payment_link_id, checkout_session_id)
        if applied:
            logger.info("Invoice paid via payment link %s (checkout %s)", payment_link_id, checkout_session_id)
        else:
            logger.info(
                "No payable invoice for payment link %s (already paid or unknown)",
                payment_link_id,
            )
        return ReconcileResult(event_type, True, applied)
