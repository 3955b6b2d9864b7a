# app/db/schema.py

from sqlalchemy import (
    MetaData, Table, Column, Integer, Text,
    DateTime, ForeignKey, CheckConstraint, Index
)

metadata = MetaData()

invoices = Table(
    "invoices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("invoice_number", Text, unique=True, nullable=False),
    Column("customer_name", Text, nullable=False),
    Column("customer_email", Text),
    Column("notes", Text),
    Column("total_cents", Integer, nullable=False),
    Column("status", Text, nullable=False, server_default="draft"),
    Column("stripe_product_id", Text),
    Column("stripe_price_id", Text),
    Column("stripe_payment_link_id", Text, unique=True),
    Column("stripe_payment_link_url", Text),
    Column("stripe_checkout_session_id", Text),
    Column("created_at", DateTime, nullable=False),
    Column("sent_at", DateTime),
    Column("paid_at", DateTime),
    CheckConstraint("total_cents >= 0", name="ck_invoices_total_nonneg"),
    CheckConstraint(
        "status IN ('draft', 'pending', 'paid', 'overdue')",
        name="ck_invoices_status",
    ),
)

Index("ix_invoices_status", invoices.c.status)

invoice_line_items = Table(
    "invoice_line_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "invoice_id",
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("description", Text, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price_cents", Integer, nullable=False),
    CheckConstraint("quantity > 0", name="ck_line_items_quantity_pos"),
    CheckConstraint("unit_price_cents >= 0", name="ck_line_items_price_nonneg"),
)
