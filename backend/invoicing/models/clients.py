from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Client(db.Model):
    """
    Customer record.

    Only the owning side of sales, invoices and payments matters to the
    ledger; contact and fiscal identifiers are carried for documents.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    company = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(512), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    # Fiscal identifiers (NIF, NIS, RC, AI) and bank account (RIB)
    nif = db.Column(db.String(64), nullable=True)
    nis = db.Column(db.String(64), nullable=True)
    rc = db.Column(db.String(64), nullable=True)
    ai = db.Column(db.String(64), nullable=True)
    rib = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Kept with the client record; payments and invoices never write it
    credit_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "company": self.company,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "nif": self.nif,
            "nis": self.nis,
            "rc": self.rc,
            "ai": self.ai,
            "rib": self.rib,
            "notes": self.notes,
            "credit_balance_cents": self.credit_balance_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
