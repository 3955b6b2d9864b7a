# app/db/store.py

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Union

import pydantic
from sqlalchemy import and_, func, or_, select
from sqlalchemy.engine import Connection, Engine

from app.db.engine import get_engine, get_writer
from app.db.schema import invoice_line_items, invoices, metadata
from app.errors import ValidationError
from app.models.invoices import (
    MAX_AMOUNT_CENTS,
    DashboardStats,
    Invoice,
    InvoiceStatus,
    LineItem,
    LineItemIn,
    StatusTotals,
)

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV-"
STATUS_FILTER_ALL = "all"
PAYABLE_STATUSES = (InvoiceStatus.pending.value, InvoiceStatus.overdue.value)
DASHBOARD_STATUSES = ("pending", "paid", "overdue")


def utcnow() -> datetime:
    # Timestamps are stored as naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_invoice_number(n: int) -> str:
    return f"{INVOICE_PREFIX}{n:04d}"


def _line_item_rows(line_items: Iterable[Union[LineItemIn, dict]]) -> List[LineItemIn]:
    items = []
    for li in line_items:
        if isinstance(li, LineItemIn):
            items.append(li)
            continue
        try:
            items.append(LineItemIn.model_validate(li))
        except pydantic.ValidationError as e:
            raise ValidationError(f"invalid line item: {e.errors()[0]['msg']}") from e
    return items


class InvoiceStore:
    """
    Persistence for invoices and their line items.

    Build one per process with InvoiceStore.open(), hand it to whatever needs
    it, and close() it on shutdown.
    """

    def __init__(self, engine: Engine, overdue_after_days: int = 30):
        self.engine = engine
        self.writer = get_writer(engine)
        self.overdue_after_days = overdue_after_days

    @classmethod
    def open(cls, db_url: str, overdue_after_days: int = 30) -> "InvoiceStore":
        return cls(get_engine(db_url), overdue_after_days=overdue_after_days)

    def init_schema(self, reset: bool = False) -> None:
        if reset:
            metadata.drop_all(self.engine)
        metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    # ---- Numbering ----

    def allocate_next_invoice_number(self, conn: Optional[Connection] = None) -> str:
        """
        Next number after the most recently inserted invoice (INV-0001 if none).

        Pass the connection of the transaction that will insert the invoice;
        without one the result is only a preview.
        """
        if conn is None:
            with self.engine.connect() as own_conn:
                return self.allocate_next_invoice_number(own_conn)

        stmt = (
            select(invoices.c.invoice_number)
            .order_by(invoices.c.id.desc())
            .limit(1)
        )
        last = conn.execute(stmt).scalar_one_or_none()
        if last is None:
            return format_invoice_number(1)

        n = int(last[len(INVOICE_PREFIX):])
        return format_invoice_number(n + 1)

    # ---- Writes ----

    def create_invoice(
        self,
        customer_name: str,
        customer_email: Optional[str] = None,
        notes: Optional[str] = None,
        line_items: Iterable[Union[LineItemIn, dict]] = (),
    ) -> int:
        items = _line_item_rows(line_items)
        if not items:
            raise ValidationError("no valid line items")

        total_cents = sum(li.quantity * li.unit_price_cents for li in items)
        if total_cents > MAX_AMOUNT_CENTS:
            raise ValidationError("invoice total too large")

        with self.writer.begin() as conn:
            invoice_number = self.allocate_next_invoice_number(conn)
            result = conn.execute(
                invoices.insert().values(
                    invoice_number=invoice_number,
                    customer_name=customer_name,
                    customer_email=customer_email or None,
                    notes=notes or None,
                    total_cents=total_cents,
                    status=InvoiceStatus.draft.value,
                    created_at=utcnow(),
                )
            )
            invoice_id = result.inserted_primary_key[0]

            conn.execute(
                invoice_line_items.insert(),
                [
                    {
                        "invoice_id": invoice_id,
                        "description": li.description,
                        "quantity": li.quantity,
                        "unit_price_cents": li.unit_price_cents,
                    }
                    for li in items
                ],
            )

        logger.info(
            "Created invoice %s (id=%s, total_cents=%s, %s line items)",
            invoice_number, invoice_id, total_cents, len(items),
        )
        return invoice_id

    def record_payment_link(
        self,
        invoice_id: int,
        product_id: str,
        price_id: str,
        payment_link_id: str,
        payment_link_url: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Attach processor ids to a draft invoice and move it to pending.

        Returns False (and changes nothing) if the invoice is missing or has
        already left draft.
        """
        stmt = (
            invoices.update()
            .where(
                and_(
                    invoices.c.id == invoice_id,
                    invoices.c.status == InvoiceStatus.draft.value,
                )
            )
            .values(
                stripe_product_id=product_id,
                stripe_price_id=price_id,
                stripe_payment_link_id=payment_link_id,
                stripe_payment_link_url=payment_link_url,
                status=InvoiceStatus.pending.value,
                sent_at=now or utcnow(),
            )
        )
        with self.writer.begin() as conn:
            changed = conn.execute(stmt).rowcount == 1

        if changed:
            logger.info("Recorded payment link %s for invoice id=%s", payment_link_id, invoice_id)
        else:
            logger.warning(
                "Payment link %s not recorded: invoice id=%s missing or not in draft",
                payment_link_id, invoice_id,
            )
        return changed

    def mark_paid_by_payment_link(
        self,
        payment_link_id: str,
        checkout_session_id: Optional[str],
        now: Optional[datetime] = None,
    ) -> bool:
        """
        pending/overdue -> paid for the invoice owning payment_link_id.

        Returns False when nothing matched; redelivered events land here.
        """
        stmt = (
            invoices.update()
            .where(
                and_(
                    invoices.c.stripe_payment_link_id == payment_link_id,
                    invoices.c.status.in_(PAYABLE_STATUSES),
                )
            )
            .values(
                status=InvoiceStatus.paid.value,
                stripe_checkout_session_id=checkout_session_id,
                paid_at=now or utcnow(),
            )
        )
        with self.writer.begin() as conn:
            return conn.execute(stmt).rowcount > 0

    def sweep_overdue(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or utcnow()) - timedelta(days=self.overdue_after_days)
        stmt = (
            invoices.update()
            .where(
                and_(
                    invoices.c.status == InvoiceStatus.pending.value,
                    invoices.c.sent_at < cutoff,
                )
            )
            .values(status=InvoiceStatus.overdue.value)
        )
        with self.writer.begin() as conn:
            count = conn.execute(stmt).rowcount

        if count:
            logger.info("Marked %s invoice(s) overdue", count)
        return count

    # ---- Reads ----

    def _attach_line_items(self, conn: Connection, rows) -> List[Invoice]:
        if not rows:
            return []

        ids = [row["id"] for row in rows]
        item_rows = conn.execute(
            select(invoice_line_items)
            .where(invoice_line_items.c.invoice_id.in_(ids))
            .order_by(invoice_line_items.c.id)
        ).mappings().all()

        by_invoice: Dict[int, List[LineItem]] = {}
        for item in item_rows:
            by_invoice.setdefault(item["invoice_id"], []).append(LineItem.model_validate(dict(item)))

        return [
            Invoice.model_validate({**row, "line_items": by_invoice.get(row["id"], [])})
            for row in rows
        ]

    def _get_where(self, condition) -> Optional[Invoice]:
        with self.engine.connect() as conn:
            row = conn.execute(select(invoices).where(condition)).mappings().first()
            if row is None:
                return None
            return self._attach_line_items(conn, [row])[0]

    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        return self._get_where(invoices.c.id == invoice_id)

    def get_invoice_by_number(self, invoice_number: str) -> Optional[Invoice]:
        return self._get_where(invoices.c.invoice_number == invoice_number)

    def list_invoices(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Invoice]:
        conditions = []
        if status and status != STATUS_FILTER_ALL:
            conditions.append(invoices.c.status == status)
        if search:
            conditions.append(
                or_(
                    invoices.c.customer_name.icontains(search, autoescape=True),
                    invoices.c.invoice_number.icontains(search, autoescape=True),
                )
            )

        stmt = select(invoices).where(and_(True, *conditions)).order_by(invoices.c.id.desc())

        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
            return self._attach_line_items(conn, rows)

    def recent_invoices(self, limit: int = 10) -> List[Invoice]:
        stmt = select(invoices).order_by(invoices.c.id.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
            return self._attach_line_items(conn, rows)

    def dashboard_stats(self) -> DashboardStats:
        stmt = (
            select(
                invoices.c.status,
                func.count().label("count"),
                func.coalesce(func.sum(invoices.c.total_cents), 0).label("total_cents"),
            )
            .where(invoices.c.status.in_(DASHBOARD_STATUSES))
            .group_by(invoices.c.status)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()

        stats = DashboardStats()
        for row in rows:
            setattr(
                stats,
                row["status"],
                StatusTotals(count=row["count"], total_cents=row["total_cents"]),
            )
        return stats
