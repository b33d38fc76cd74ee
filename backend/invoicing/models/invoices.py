from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class Invoice(db.Model):
    """
    Invoice grouping one or more sales of a client.

    is_paid / paid_at are derived by the payment-status reconciler and are
    never written from request payloads.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        db.Index("ix_invoices_client_deleted", "client_id", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INV-2024-001")
    invoice_number = db.Column(db.String(64), nullable=False)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)

    total_amount_ht_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_ttc_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    # Derived payment status
    is_paid = db.Column(db.Boolean, nullable=False, default=False, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Soft delete
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    client = db.relationship("Client", backref=db.backref("invoices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "client_id": self.client_id,
            "date": to_iso_date(self.date),
            "due_date": to_iso_date(self.due_date),
            "total_amount_ht_cents": self.total_amount_ht_cents,
            "total_amount_ttc_cents": self.total_amount_ttc_cents,
            "notes": self.notes,
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at),
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InvoiceSale(db.Model):
    """
    Membership of a sale in an invoice (authoritative relation).

    Rows are structural: they are removed, not soft-deleted, when a sale is
    deleted.
    """
    __tablename__ = "invoice_sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_id", "sale_id", name="uq_invoice_sales_invoice_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
        }
