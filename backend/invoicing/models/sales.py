from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


PRODUCT_COIL = "coil"
PRODUCT_CORRUGATED_SHEET = "corrugated_sheet"
PRODUCT_STEEL_SLITTING = "steel_slitting"


def _num(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


class Sale(db.Model):
    """
    Sale to a client, made of typed steel line items.

    Soft-deleted sales keep their rows, items and invoice back-reference so
    that a restore can bring them back with their payments.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_client_deleted", "client_id", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)

    # Totals (cents): HT is pre-tax, TTC is tax-inclusive
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_ttc_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=Decimal("0"))
    transportation_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    # Legacy single-invoice link, kept in sync with invoice_sales
    is_invoiced = db.Column(db.Boolean, nullable=False, default=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)

    # Derived from the sale's own payments
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Soft delete
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
        lazy=True,
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "client_id": self.client_id,
            "date": to_iso_date(self.date),
            "total_amount_cents": self.total_amount_cents,
            "total_amount_ttc_cents": self.total_amount_ttc_cents,
            "tax_rate": _num(self.tax_rate),
            "transportation_fee_cents": self.transportation_fee_cents,
            "notes": self.notes,
            "is_invoiced": self.is_invoiced,
            "invoice_id": self.invoice_id,
            "is_paid": self.is_paid,
            "paid_at": to_utc_z(self.paid_at),
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a sale.

    Lifecycle is bound to the sale: items are replaced wholesale on update and
    removed with the sale row, never soft-deleted on their own.

    Measurements used per product type:
    - coil: thickness, width, weight (tons)
    - corrugated_sheet: quantity, width (the width column holds the sheet length)
    - steel_slitting: quantity, weight (tons)
    - anything else: total_amount_cents supplied by the caller
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    product_type = db.Column(db.String(32), nullable=False, index=True)

    thickness = db.Column(db.Numeric(14, 3), nullable=True)
    width = db.Column(db.Numeric(14, 3), nullable=True)
    weight = db.Column(db.Numeric(14, 3), nullable=True)
    quantity = db.Column(db.Numeric(14, 3), nullable=True)

    # Price per ton for steel products; unit price for other product types
    price_per_ton_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="items")

    @property
    def sheet_length(self) -> Decimal | None:
        """Length of a corrugated sheet (stored in ``width``)."""
        if self.product_type != PRODUCT_CORRUGATED_SHEET:
            return None
        return self.width

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "description": self.description,
            "product_type": self.product_type,
            "thickness": _num(self.thickness),
            "width": _num(self.width),
            "weight": _num(self.weight),
            "quantity": _num(self.quantity),
            "price_per_ton_cents": self.price_per_ton_cents,
            "total_amount_cents": self.total_amount_cents,
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Money received from a client.

    A payment hangs off a sale, an invoice, or both. When the sale is
    invoiced, invoice_id mirrors the sale's invoice so the invoice status can
    be recomputed from either side.

    METHODS:
    - cash
    - check (check_number required)
    - bank_transfer
    - credit_card
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_invoice_deleted", "invoice_id", "is_deleted"),
        db.Index("ix_payments_sale_deleted", "sale_id", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    date = db.Column(db.Date, nullable=False)
    method = db.Column(db.String(32), nullable=False, index=True)
    check_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True))
    client = db.relationship("Client", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "invoice_id": self.invoice_id,
            "client_id": self.client_id,
            "amount_cents": self.amount_cents,
            "date": to_iso_date(self.date),
            "method": self.method,
            "check_number": self.check_number,
            "notes": self.notes,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
