# Overview: Propagates soft-delete / restore across sales, payments, invoice membership and invoices.

"""
Cascade Controller

SALE DELETE:
1. Collect live invoices governing the sale (link rows + back-reference)
2. Guard: any of them paid -> ConflictError, nothing touched
3. Soft-delete the sale and its live payments
4. Remove the sale's link rows (membership is structural)
5. Soft-delete each invoice left without live member sales; reconcile the rest

SALE RESTORE:
1. Restore the sale and all of its payments
2. Re-create the link row to the invoice named by the back-reference
3. Restore that invoice once every member sale is live; reconcile it

INVOICE ATTACH (creation):
- mark each sale invoiced, link it, re-point its payments to the invoice

INVOICE DELETE:
- HARD (draft): drop links, detach sales and stale payment pointers, delete row
- SOFT: detach sales, mark invoice deleted; payments and links kept

INVOICE RESTORE:
- re-attach live member sales (conflict if one was re-invoiced meanwhile)
- refused while a member sale is still deleted or no live sale remains

The controller never commits; callers wrap each operation in atomic().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..models import Invoice, Sale
from ..time_utils import utcnow
from ..validation import ConflictError
from .deletion_guard import DeletionGuard, DeletionMode
from .reconciler import PaymentStatusReconciler
from .repository import LedgerRepository


logger = logging.getLogger(__name__)


@dataclass
class CascadeResult:
    """Rows touched by a cascade, for audit details and API responses."""
    payments: list[int] = field(default_factory=list)
    invoices_deleted: list[int] = field(default_factory=list)
    invoices_restored: list[int] = field(default_factory=list)
    sales: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "payments": self.payments,
            "invoices_deleted": self.invoices_deleted,
            "invoices_restored": self.invoices_restored,
            "sales": self.sales,
        }


class CascadeController:
    def __init__(
        self,
        repository: LedgerRepository,
        reconciler: PaymentStatusReconciler,
        guard: DeletionGuard,
    ):
        self.repository = repository
        self.reconciler = reconciler
        self.guard = guard

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def governing_invoices(self, sale: Sale) -> list[Invoice]:
        """Live invoices the sale belongs to, locked for the cascade."""
        invoices = self.repository.linked_invoices(sale.id, lock=True)
        known = {invoice.id for invoice in invoices}
        if sale.invoice_id is not None and sale.invoice_id not in known:
            invoice = self.repository.get_invoice(sale.invoice_id, live=False, lock=True)
            if not invoice.is_deleted:
                invoices.append(invoice)
        return invoices

    def delete_sale(self, sale: Sale) -> CascadeResult:
        invoices = self.governing_invoices(sale)
        self.guard.ensure_sale_deletable(sale, invoices)

        now = utcnow()
        result = CascadeResult(sales=[sale.id])

        sale.is_deleted = True
        sale.deleted_at = now

        for payment in self.repository.payments_for_sale(sale.id, deleted=False):
            payment.is_deleted = True
            payment.deleted_at = now
            result.payments.append(payment.id)

        self.repository.remove_links_for_sale(sale.id)

        for invoice in invoices:
            if self.repository.live_member_count(invoice.id) == 0:
                invoice.is_deleted = True
                invoice.deleted_at = now
                result.invoices_deleted.append(invoice.id)
                logger.info("Invoice %s soft-deleted with its last sale %s", invoice.id, sale.id)
            else:
                self.reconciler.recompute_invoice_status(invoice.id)

        self.repository.session.flush()
        return result

    def restore_sale(self, sale: Sale) -> CascadeResult:
        if not sale.is_deleted:
            raise ConflictError(f"Sale {sale.id} is not deleted")

        result = CascadeResult(sales=[sale.id])

        sale.is_deleted = False
        sale.deleted_at = None

        for payment in self.repository.payments_for_sale(sale.id, deleted=True):
            payment.is_deleted = False
            payment.deleted_at = None
            result.payments.append(payment.id)

        if sale.invoice_id is not None:
            invoice = self.repository.get_invoice(sale.invoice_id, live=False, lock=True)
            self.repository.add_link(invoice.id, sale.id)

            if invoice.is_deleted:
                members = self.repository.all_members(invoice.id)
                if all(not member.is_deleted for member in members):
                    invoice.is_deleted = False
                    invoice.deleted_at = None
                    result.invoices_restored.append(invoice.id)
                    logger.info("Invoice %s restored with sale %s", invoice.id, sale.id)

            self.reconciler.recompute_invoice_status(invoice.id)

        self.reconciler.recompute_sale_status(sale.id)
        self.repository.session.flush()
        return result

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def attach_sales(self, invoice: Invoice, sales: list[Sale]) -> CascadeResult:
        """Make the sales members of the invoice and carry their payments along."""
        result = CascadeResult()
        repointed_live = False

        for sale in sales:
            sale.is_invoiced = True
            sale.invoice_id = invoice.id
            self.repository.add_link(invoice.id, sale.id)
            result.sales.append(sale.id)

            for payment in self.repository.payments_for_sale(sale.id):
                payment.invoice_id = invoice.id
                result.payments.append(payment.id)
                if not payment.is_deleted:
                    repointed_live = True

        self.repository.session.flush()
        if repointed_live:
            self.reconciler.recompute_invoice_status(invoice.id)
        return result

    def _detach_sales(self, invoice: Invoice) -> list[int]:
        detached = []
        for sale in self.repository.sales_referencing_invoice(invoice.id):
            sale.is_invoiced = False
            sale.invoice_id = None
            detached.append(sale.id)
        self.repository.session.flush()
        return detached

    def delete_invoice(self, invoice: Invoice) -> tuple[DeletionMode, CascadeResult]:
        mode = self.guard.choose_deletion_mode(invoice)
        result = CascadeResult(invoices_deleted=[invoice.id])

        if mode is DeletionMode.HARD:
            self.repository.remove_links_for_invoice(invoice.id)
            result.sales = self._detach_sales(invoice)
            # Only soft-deleted payments can still point here (no live ones)
            for payment in self.repository.payments_pointing_at_invoice(invoice.id):
                payment.invoice_id = None
                result.payments.append(payment.id)
            self.repository.session.flush()
            self.repository.delete_invoice_row(invoice)
        else:
            result.sales = self._detach_sales(invoice)
            invoice.is_deleted = True
            invoice.deleted_at = utcnow()
            self.repository.session.flush()

        logger.info("Invoice %s deleted (%s)", result.invoices_deleted[0], mode.value)
        return mode, result

    def restore_invoice(self, invoice: Invoice) -> CascadeResult:
        if not invoice.is_deleted:
            raise ConflictError(f"Invoice {invoice.id} is not deleted")

        deleted_members = [s.id for s in self.repository.all_members(invoice.id) if s.is_deleted]
        if deleted_members:
            raise ConflictError(
                f"Cannot restore invoice {invoice.invoice_number}: "
                f"sale {deleted_members[0]} is deleted (restore the sale instead)"
            )

        live_members = [s for s in self.repository.member_sales(invoice.id) if not s.is_deleted]
        if not live_members:
            raise ConflictError(f"Cannot restore invoice {invoice.invoice_number}: it has no live sales")
        for sale in live_members:
            if sale.invoice_id is not None and sale.invoice_id != invoice.id:
                raise ConflictError(
                    f"Cannot restore invoice {invoice.invoice_number}: "
                    f"sale {sale.id} now belongs to invoice {sale.invoice_id}"
                )

        result = CascadeResult(invoices_restored=[invoice.id])
        invoice.is_deleted = False
        invoice.deleted_at = None

        for sale in live_members:
            sale.is_invoiced = True
            sale.invoice_id = invoice.id
            result.sales.append(sale.id)

        self.repository.session.flush()
        self.reconciler.recompute_invoice_status(invoice.id)
        return result
