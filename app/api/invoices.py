# app/api/invoices.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_store, get_workflow, require_admin
from app.db.store import STATUS_FILTER_ALL, InvoiceStore
from app.errors import NotFoundError, ValidationError
from app.models.invoices import (
    DashboardOut,
    Invoice,
    InvoiceCreateIn,
    InvoiceCreateOut,
    InvoiceStatus,
    SweepOut,
)
from app.services.invoicing import InvoiceWorkflow

router = APIRouter(
    prefix="/invoices",
    tags=["invoices"],
    dependencies=[Depends(require_admin)],
)

STATUS_FILTERS = {STATUS_FILTER_ALL, *(s.value for s in InvoiceStatus)}


@router.get("", response_model=List[Invoice])
def list_invoices(
    status: Optional[str] = Query(
        default=None,
        description="draft | pending | paid | overdue | all",
    ),
    search: Optional[str] = Query(
        default=None,
        description="Case-insensitive match on customer name or invoice number",
    ),
    store: InvoiceStore = Depends(get_store),
) -> List[Invoice]:
    """
    Newest first. Status and search filters are combined.
    """
    if status is not None and status not in STATUS_FILTERS:
        raise ValidationError(f"unknown status filter {status!r}")

    return store.list_invoices(status=status, search=(search or "").strip() or None)


@router.post("", response_model=InvoiceCreateOut, status_code=201)
def create_invoice(
    form: InvoiceCreateIn,
    workflow: InvoiceWorkflow = Depends(get_workflow),
) -> InvoiceCreateOut:
    """
    Create an invoice from form-style input and, if Stripe is configured,
    generate its payment link.
    """
    outcome = workflow.create(form)
    return InvoiceCreateOut(
        invoice=outcome.invoice,
        payment_link_created=outcome.payment_link_created,
        message=outcome.message,
    )


@router.get("/dashboard", response_model=DashboardOut)
def dashboard(
    limit: int = Query(10, ge=1, le=100),
    store: InvoiceStore = Depends(get_store),
) -> DashboardOut:
    """
    Refreshes overdue status, then returns per-status totals and the most
    recent invoices.
    """
    marked = store.sweep_overdue()
    return DashboardOut(
        stats=store.dashboard_stats(),
        recent=store.recent_invoices(limit),
        marked_overdue=marked,
    )


@router.post("/sweep-overdue", response_model=SweepOut)
def sweep_overdue(store: InvoiceStore = Depends(get_store)) -> SweepOut:
    return SweepOut(marked_overdue=store.sweep_overdue())


@router.get("/number/{invoice_number}", response_model=Invoice)
def get_invoice_by_number(
    invoice_number: str,
    store: InvoiceStore = Depends(get_store),
) -> Invoice:
    invoice = store.get_invoice_by_number(invoice_number)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


@router.get("/{invoice_id}", response_model=Invoice)
def get_invoice(
    invoice_id: int,
    store: InvoiceStore = Depends(get_store),
) -> Invoice:
    invoice = store.get_invoice(invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


@router.post("/{invoice_id}/payment-link", response_model=Invoice)
def provision_payment_link(
    invoice_id: int,
    workflow: InvoiceWorkflow = Depends(get_workflow),
) -> Invoice:
    """
    Retry payment-link creation for an invoice left without one.
    """
    return workflow.provision_payment_link(invoice_id)
