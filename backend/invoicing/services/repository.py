# Overview: Typed read/write access to sales, items, invoices, invoice membership and payments.

from __future__ import annotations

from sqlalchemy import or_, select

from ..models import Client, Sale, SaleItem, Invoice, InvoiceSale, Payment
from ..validation import NotFoundError
from .concurrency import lock_for_update


class LedgerRepository:
    """
    Row access for the ledger tables over an injected SQLAlchemy session.

    The repository never commits: the caller owns the transaction, so every
    write here becomes part of one atomic logical operation.
    """

    def __init__(self, session):
        self.session = session

    # ------------------------------------------------------------------
    # Point lookups
    # ------------------------------------------------------------------

    def _get(self, model, entity_id: int, *, label: str, live: bool, lock: bool):
        query = self.session.query(model).filter_by(id=entity_id)
        if lock:
            query = lock_for_update(query)
        entity = query.first()
        if entity is None:
            raise NotFoundError(f"{label} {entity_id} not found")
        if live and getattr(entity, "is_deleted", False):
            raise NotFoundError(f"{label} {entity_id} is deleted")
        return entity

    def get_client(self, client_id: int) -> Client:
        return self._get(Client, client_id, label="Client", live=False, lock=False)

    def get_sale(self, sale_id: int, *, live: bool = True, lock: bool = False) -> Sale:
        return self._get(Sale, sale_id, label="Sale", live=live, lock=lock)

    def get_invoice(self, invoice_id: int, *, live: bool = True, lock: bool = False) -> Invoice:
        return self._get(Invoice, invoice_id, label="Invoice", live=live, lock=lock)

    def get_payment(self, payment_id: int, *, live: bool = True, lock: bool = False) -> Payment:
        return self._get(Payment, payment_id, label="Payment", live=live, lock=lock)

    # ------------------------------------------------------------------
    # Sales and items
    # ------------------------------------------------------------------

    def add_sale(self, sale: Sale, items: list[dict]) -> Sale:
        for item in items:
            sale.items.append(SaleItem(**item))
        self.session.add(sale)
        self.session.flush()
        return sale

    def replace_sale_items(self, sale: Sale, items: list[dict]) -> None:
        """Delete every existing item, then insert the new set (no diffing)."""
        sale.items.clear()
        self.session.flush()
        for item in items:
            sale.items.append(SaleItem(**item))
        self.session.flush()

    def list_sales(self, *, include_deleted: bool = False, client_id: int | None = None) -> list[Sale]:
        query = self.session.query(Sale)
        if not include_deleted:
            query = query.filter(Sale.is_deleted.is_(False))
        if client_id is not None:
            query = query.filter(Sale.client_id == client_id)
        return query.order_by(Sale.date.desc(), Sale.id.desc()).all()

    def payments_for_sale(self, sale_id: int, *, deleted: bool | None = None) -> list[Payment]:
        """Payments attached to a sale; deleted=None returns both live and deleted rows."""
        query = self.session.query(Payment).filter(Payment.sale_id == sale_id)
        if deleted is not None:
            query = query.filter(Payment.is_deleted.is_(deleted))
        return query.order_by(Payment.id).all()

    # ------------------------------------------------------------------
    # Invoices and membership
    # ------------------------------------------------------------------

    def invoice_number_taken(self, invoice_number: str, *, exclude_id: int | None = None) -> bool:
        query = self.session.query(Invoice.id).filter(Invoice.invoice_number == invoice_number)
        if exclude_id is not None:
            query = query.filter(Invoice.id != exclude_id)
        return query.first() is not None

    def list_invoices(self, *, include_deleted: bool = False, client_id: int | None = None) -> list[Invoice]:
        query = self.session.query(Invoice)
        if not include_deleted:
            query = query.filter(Invoice.is_deleted.is_(False))
        if client_id is not None:
            query = query.filter(Invoice.client_id == client_id)
        return query.order_by(Invoice.date.desc(), Invoice.id.desc()).all()

    def linked_invoices(self, sale_id: int, *, include_deleted: bool = False, lock: bool = False) -> list[Invoice]:
        """Invoices that list the sale in the link table."""
        query = (
            self.session.query(Invoice)
            .join(InvoiceSale, InvoiceSale.invoice_id == Invoice.id)
            .filter(InvoiceSale.sale_id == sale_id)
        )
        if not include_deleted:
            query = query.filter(Invoice.is_deleted.is_(False))
        if lock:
            query = lock_for_update(query)
        return query.order_by(Invoice.id).all()

    def member_sales(self, invoice_id: int) -> list[Sale]:
        """Sales linked to the invoice through the link table (live or not)."""
        return (
            self.session.query(Sale)
            .join(InvoiceSale, InvoiceSale.sale_id == Sale.id)
            .filter(InvoiceSale.invoice_id == invoice_id)
            .order_by(Sale.id)
            .all()
        )

    def _member_filter(self, invoice_id: int):
        linked = select(InvoiceSale.sale_id).where(InvoiceSale.invoice_id == invoice_id)
        return or_(Sale.id.in_(linked), Sale.invoice_id == invoice_id)

    def all_members(self, invoice_id: int) -> list[Sale]:
        """
        Every sale tied to the invoice by a link row or by its back-reference,
        including soft-deleted ones (their link rows are gone but the
        back-reference survives).
        """
        return (
            self.session.query(Sale)
            .filter(self._member_filter(invoice_id))
            .order_by(Sale.id)
            .all()
        )

    def live_member_count(self, invoice_id: int) -> int:
        return (
            self.session.query(Sale)
            .filter(Sale.is_deleted.is_(False), self._member_filter(invoice_id))
            .count()
        )

    def sales_referencing_invoice(self, invoice_id: int) -> list[Sale]:
        """Sales whose back-reference points at the invoice (live or not)."""
        return (
            self.session.query(Sale)
            .filter(Sale.invoice_id == invoice_id)
            .order_by(Sale.id)
            .all()
        )

    def add_link(self, invoice_id: int, sale_id: int) -> InvoiceSale:
        link = (
            self.session.query(InvoiceSale)
            .filter_by(invoice_id=invoice_id, sale_id=sale_id)
            .first()
        )
        if link is None:
            link = InvoiceSale(invoice_id=invoice_id, sale_id=sale_id)
            self.session.add(link)
            self.session.flush()
        return link

    def has_link(self, invoice_id: int, sale_id: int) -> bool:
        return (
            self.session.query(InvoiceSale.id)
            .filter_by(invoice_id=invoice_id, sale_id=sale_id)
            .first()
        ) is not None

    def remove_links_for_sale(self, sale_id: int) -> int:
        removed = (
            self.session.query(InvoiceSale)
            .filter(InvoiceSale.sale_id == sale_id)
            .delete(synchronize_session=False)
        )
        self.session.flush()
        return removed

    def remove_links_for_invoice(self, invoice_id: int) -> int:
        removed = (
            self.session.query(InvoiceSale)
            .filter(InvoiceSale.invoice_id == invoice_id)
            .delete(synchronize_session=False)
        )
        self.session.flush()
        return removed

    def delete_invoice_row(self, invoice: Invoice) -> None:
        self.session.delete(invoice)
        self.session.flush()

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def _invoice_payment_filter(self, invoice_id: int):
        sale_ids = select(Sale.id).where(Sale.invoice_id == invoice_id)
        return or_(Payment.invoice_id == invoice_id, Payment.sale_id.in_(sale_ids))

    def live_payments_for_invoice(self, invoice_id: int) -> list[Payment]:
        """
        Non-deleted payments associated with the invoice, either directly
        (payment.invoice_id) or through a sale whose invoice_id matches.
        """
        return (
            self.session.query(Payment)
            .filter(Payment.is_deleted.is_(False), self._invoice_payment_filter(invoice_id))
            .order_by(Payment.date, Payment.id)
            .all()
        )

    def live_payment_count(self, invoice_id: int) -> int:
        return (
            self.session.query(Payment)
            .filter(Payment.is_deleted.is_(False), self._invoice_payment_filter(invoice_id))
            .count()
        )

    def payments_pointing_at_invoice(self, invoice_id: int) -> list[Payment]:
        return self.session.query(Payment).filter(Payment.invoice_id == invoice_id).all()

    def add_payment(self, payment: Payment) -> Payment:
        self.session.add(payment)
        self.session.flush()
        return payment

    def list_payments(self, *, include_deleted: bool = False, client_id: int | None = None) -> list[Payment]:
        query = self.session.query(Payment)
        if not include_deleted:
            query = query.filter(Payment.is_deleted.is_(False))
        if client_id is not None:
            query = query.filter(Payment.client_id == client_id)
        return query.order_by(Payment.date.desc(), Payment.id.desc()).all()
