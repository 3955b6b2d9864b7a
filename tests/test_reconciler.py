import json

import pytest

from app.errors import AuthenticationError, ConfigurationError
from app.models.invoices import InvoiceCreateIn, InvoiceStatus
from app.services.invoicing import InvoiceWorkflow
from app.services.payments import verify_stripe_event
from app.services.reconciler import PaymentReconciler
from tests.conftest import (
    GOOD_SIGNATURE,
    WEBHOOK_SECRET,
    FakeGateway,
    checkout_completed,
    fake_verify,
    repair_item,
    stripe_signature,
)


@pytest.fixture
def reconciler(store):
    return PaymentReconciler(store, WEBHOOK_SECRET, verify=fake_verify)


@pytest.fixture
def pending_invoice(store):
    invoice_id = store.create_invoice("Acme Corp", line_items=[repair_item()])
    store.record_payment_link(invoice_id, "prod_1", "price_1", "plink_acme", "https://buy.stripe.com/acme")
    return invoice_id


def test_missing_secret_is_configuration_error(store, pending_invoice):
    reconciler = PaymentReconciler(store, None, verify=fake_verify)

    with pytest.raises(ConfigurationError):
        reconciler.handle(checkout_completed("plink_acme"), GOOD_SIGNATURE)
    assert store.get_invoice(pending_invoice).status == InvoiceStatus.pending


@pytest.mark.parametrize("signature", [None, "", "t=1,v1=forged"])
def test_bad_signature_changes_nothing(reconciler, store, pending_invoice, signature):
    with pytest.raises(AuthenticationError):
        reconciler.handle(checkout_completed("plink_acme"), signature)
    assert store.get_invoice(pending_invoice).status == InvoiceStatus.pending


def test_other_event_types_are_acknowledged(reconciler, store, pending_invoice):
    payload = json.dumps({"type": "payment_intent.succeeded", "data": {"object": {"payment_link": "plink_acme"}}})

    result = reconciler.handle(payload.encode(), GOOD_SIGNATURE)

    assert result.event_type == "payment_intent.succeeded"
    assert not result.handled
    assert store.get_invoice(pending_invoice).status == InvoiceStatus.pending


def test_checkout_without_payment_link_is_ignored(reconciler, store, pending_invoice):
    result = reconciler.handle(checkout_completed(None), GOOD_SIGNATURE)

    assert result.handled and not result.applied
    assert store.get_invoice(pending_invoice).status == InvoiceStatus.pending


def test_unknown_payment_link_is_a_no_op(reconciler, store, pending_invoice):
    result = reconciler.handle(checkout_completed("plink_other"), GOOD_SIGNATURE)

    assert not result.applied
    assert store.get_invoice(pending_invoice).status == InvoiceStatus.pending


def test_redelivery_is_idempotent(reconciler, store, pending_invoice):
    payload = checkout_completed("plink_acme", "cs_live_1")

    first = reconciler.handle(payload, GOOD_SIGNATURE)
    after_first = store.get_invoice(pending_invoice)
    second = reconciler.handle(payload, GOOD_SIGNATURE)
    after_second = store.get_invoice(pending_invoice)

    assert first.applied and not second.applied
    assert after_first.status == after_second.status == InvoiceStatus.paid
    assert after_second.paid_at == after_first.paid_at
    assert after_second.stripe_checkout_session_id == "cs_live_1"


def test_end_to_end_acme_scenario(store):
    workflow = InvoiceWorkflow(store, FakeGateway())
    outcome = workflow.create(
        InvoiceCreateIn(
            customer_name="Acme Corp",
            description=["Repair"],
            quantity=[2],
            unit_price=["50.00"],
        )
    )
    invoice = outcome.invoice
    assert invoice.invoice_number == "INV-0001"
    assert invoice.total_cents == 10000
    assert invoice.status == InvoiceStatus.pending

    reconciler = PaymentReconciler(store, WEBHOOK_SECRET, verify=fake_verify)
    payload = checkout_completed(invoice.stripe_payment_link_id, "cs_acme")
    reconciler.handle(payload, GOOD_SIGNATURE)
    paid = store.get_invoice(invoice.id)
    assert paid.status == InvoiceStatus.paid
    assert paid.paid_at is not None

    reconciler.handle(payload, GOOD_SIGNATURE)
    assert store.get_invoice(invoice.id) == paid


def test_stripe_verifier_accepts_signed_payload():
    payload = checkout_completed("plink_acme")

    event = verify_stripe_event(payload, stripe_signature(payload, WEBHOOK_SECRET), WEBHOOK_SECRET)

    assert event["type"] == "checkout.session.completed"
    assert event["data"]["object"]["payment_link"] == "plink_acme"


@pytest.mark.parametrize(
    "signature",
    [
        None,
        "garbage",
        "t=1,v1=deadbeef",
    ],
)
def test_stripe_verifier_rejects_bad_signatures(signature):
    with pytest.raises(AuthenticationError):
        verify_stripe_event(checkout_completed("plink_acme"), signature, WEBHOOK_SECRET)


def test_stripe_verifier_rejects_wrong_secret_and_stale_timestamp():
    payload = checkout_completed("plink_acme")

    with pytest.raises(AuthenticationError):
        verify_stripe_event(payload, stripe_signature(payload, "whsec_other"), WEBHOOK_SECRET)
    with pytest.raises(AuthenticationError):
        verify_stripe_event(payload, stripe_signature(payload, WEBHOOK_SECRET, timestamp=1), WEBHOOK_SECRET)


def test_reconciler_with_real_verifier(store, pending_invoice):
    reconciler = PaymentReconciler(store, WEBHOOK_SECRET)
    payload = checkout_completed("plink_acme")

    result = reconciler.handle(payload, stripe_signature(payload, WEBHOOK_SECRET))

    assert result.applied
    assert store.get_invoice(pending_invoice).status == InvoiceStatus.paid
