# app/services/invoicing.py

import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, NamedTuple, Optional, Protocol, Sequence

from email_validator import EmailNotValidError, validate_email

from app.db.store import InvoiceStore
from app.errors import ConfigurationError, ExternalServiceError, NotFoundError, ValidationError
from app.models.invoices import (
    MAX_AMOUNT_CENTS,
    MAX_QUANTITY,
    Invoice,
    InvoiceCreateIn,
    InvoiceStatus,
    LineItemIn,
    PaymentLinkRecord,
)

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def create_payment_link(self, invoice: Invoice) -> PaymentLinkRecord:
        ...


class CreationOutcome(NamedTuple):
    invoice: Invoice
    payment_link_created: bool
    message: str


# ---- Helpers ----

def to_cents(value) -> int:
    """
    Major currency units ("49.99", 49.99) -> integer cents, half-up.

    Garbage -> 0. Raises ValidationError above MAX_AMOUNT_CENTS.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return 0
    if not amount.is_finite():
        return 0

    cents = amount * 100
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError("unit price too large")
    if cents < -MAX_AMOUNT_CENTS:
        # Non-positive prices are discarded anyway
        return 0
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def parse_quantity(value) -> int:
    if isinstance(value, bool):
        return 1
    try:
        qty = int(str(value).strip())
    except (TypeError, ValueError):
        return 1
    if qty > MAX_QUANTITY:
        raise ValidationError("quantity too large")
    return qty if qty > 0 else 1


def check_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("invalid customer email") from e
    return value


def _at(values: Sequence, i: int):
    return values[i] if i < len(values) else None


def parse_line_items(
    descriptions: Sequence[str],
    quantities: Sequence,
    unit_prices: Sequence,
) -> List[LineItemIn]:
    items = []
    for i, desc in enumerate(descriptions):
        desc = (desc or "").strip()
        if not desc:
            continue
        cents = to_cents(_at(unit_prices, i))
        if cents <= 0:
            continue
        items.append(
            LineItemIn(
                description=desc,
                quantity=parse_quantity(_at(quantities, i)),
                unit_price_cents=cents,
            )
        )
    return items


class InvoiceWorkflow:
    """
    Validates operator input, persists the invoice and, when a gateway is
    configured, provisions its payment link.
    """

    def __init__(self, store: InvoiceStore, gateway: Optional[PaymentGateway] = None):
        self.store = store
        self.gateway = gateway

    def create(self, form: InvoiceCreateIn) -> CreationOutcome:
        customer_name = form.customer_name.strip()
        if not customer_name or not any((d or "").strip() for d in form.description):
            raise ValidationError("missing required fields")

        customer_email = check_email(form.customer_email)
        line_items = parse_line_items(form.description, form.quantity, form.unit_price)
        if not line_items:
            raise ValidationError("no valid line items")

        invoice_id = self.store.create_invoice(
            customer_name=customer_name,
            customer_email=customer_email,
            notes=form.notes,
            line_items=line_items,
        )
        invoice = self.store.get_invoice(invoice_id)

        if self.gateway is None:
            return CreationOutcome(
                invoice,
                False,
                f"Invoice {invoice.invoice_number} created "
                "(payments not configured, no payment link generated).",
            )

        try:
            invoice = self._attach_payment_link(invoice)
        except ExternalServiceError:
            logger.exception("Payment link creation failed for %s", invoice.invoice_number)
            return CreationOutcome(
                invoice,
                False,
                f"Invoice {invoice.invoice_number} created, but the payment link "
                "could not be generated. Retry from the invoice.",
            )

        return CreationOutcome(
            invoice,
            invoice.stripe_payment_link_id is not None,
            f"Invoice {invoice.invoice_number} created with payment link.",
        )

    def provision_payment_link(self, invoice_id: int) -> Invoice:
        """
        Create the payment link for an invoice that does not have one yet.

        Safe to call repeatedly: invoices that already have a link, or are no
        longer draft, are returned unchanged.
        """
        invoice = self.store.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"invoice {invoice_id} not found")
        if invoice.stripe_payment_link_id or invoice.status != InvoiceStatus.draft:
            return invoice
        if self.gateway is None:
            raise ConfigurationError("payment processor is not configured")

        return self._attach_payment_link(invoice)

    def _attach_payment_link(self, invoice: Invoice) -> Invoice:
        link = self.gateway.create_payment_link(invoice)
        self.store.record_payment_link(
            invoice.id,
            product_id=link.product_id,
            price_id=link.price_id,
            payment_link_id=link.payment_link_id,
            payment_link_url=link.payment_link_url,
        )
        return self.store.get_invoice(invoice.id)
