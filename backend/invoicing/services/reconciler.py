# Overview: Keeps invoice (and sale) paid status an exact function of live payments.

"""
Payment-Status Reconciler

PAID RULE:
- paid_total = sum of amount_cents over non-deleted payments attached to the
  invoice directly (payment.invoice_id) or through one of its sales
  (sale.invoice_id)
- paid_total >= total_amount_ttc_cents -> is_paid = True, paid_at = now
  (paid_at is kept if the invoice was already paid)
- paid_total <  total_amount_ttc_cents -> is_paid = False, paid_at = None

Status is never sticky: any reduction of effective payment reverts it.
Recomputation is idempotent; when nothing changes no UPDATE is emitted.
"""

from __future__ import annotations

import logging

from ..time_utils import utcnow
from .repository import LedgerRepository


logger = logging.getLogger(__name__)


PAYMENT_STATUS_UNPAID = "UNPAID"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_OVERPAID = "OVERPAID"


class PaymentStatusReconciler:
    def __init__(self, repository: LedgerRepository):
        self.repository = repository

    def paid_total(self, invoice_id: int) -> int:
        payments = self.repository.live_payments_for_invoice(invoice_id)
        return sum(p.amount_cents for p in payments)

    def remaining_amount(self, invoice_id: int) -> int:
        """Amount still owed, never below zero."""
        invoice = self.repository.get_invoice(invoice_id, live=False)
        return max(0, invoice.total_amount_ttc_cents - self.paid_total(invoice_id))

    def recompute_invoice_status(self, invoice_id: int) -> bool:
        """
        Recompute is_paid / paid_at for one invoice.

        The invoice row is locked first so concurrent payment writes on the
        same invoice serialize instead of each reading a stale sum.

        Returns:
            True if the row was updated, False if it was already correct
            (or the invoice is soft-deleted and therefore skipped).
        """
        invoice = self.repository.get_invoice(invoice_id, live=False, lock=True)
        if invoice.is_deleted:
            return False

        paid_total = self.paid_total(invoice_id)
        return _apply_paid_state(invoice, paid_total >= invoice.total_amount_ttc_cents, self.repository.session)

    def recompute_sale_status(self, sale_id: int) -> bool:
        """Same rule as invoices, over the sale's own payments and TTC total."""
        sale = self.repository.get_sale(sale_id, live=False, lock=True)
        if sale.is_deleted:
            return False

        payments = self.repository.payments_for_sale(sale_id, deleted=False)
        paid_total = sum(p.amount_cents for p in payments)
        return _apply_paid_state(sale, paid_total >= sale.total_amount_ttc_cents, self.repository.session)

    def recompute_many(self, invoice_ids) -> int:
        """Recompute several invoices; returns how many rows changed."""
        changed = 0
        for invoice_id in sorted({i for i in invoice_ids if i is not None}):
            if self.recompute_invoice_status(invoice_id):
                changed += 1
        return changed

    def payment_summary(self, invoice_id: int) -> dict:
        """Totals and status label for an invoice."""
        invoice = self.repository.get_invoice(invoice_id, live=False)
        payments = self.repository.live_payments_for_invoice(invoice_id)
        paid_total = sum(p.amount_cents for p in payments)
        total_due = invoice.total_amount_ttc_cents

        if paid_total == 0 and total_due > 0:
            status = PAYMENT_STATUS_UNPAID
        elif paid_total < total_due:
            status = PAYMENT_STATUS_PARTIAL
        elif paid_total == total_due:
            status = PAYMENT_STATUS_PAID
        else:
            status = PAYMENT_STATUS_OVERPAID

        return {
            "invoice_id": invoice.id,
            "total_due_cents": total_due,
            "total_paid_cents": paid_total,
            "remaining_cents": max(0, total_due - paid_total),
            "payment_status": status,
            "is_paid": invoice.is_paid,
            "payment_count": len(payments),
        }


def _apply_paid_state(entity, should_be_paid: bool, session) -> bool:
    if should_be_paid:
        if entity.is_paid and entity.paid_at is not None:
            return False
        entity.is_paid = True
        entity.paid_at = utcnow()
    else:
        if not entity.is_paid and entity.paid_at is None:
            return False
        entity.is_paid = False
        entity.paid_at = None

    session.flush()
    logger.debug(
        "%s %s payment status -> %s",
        type(entity).__name__, entity.id, "paid" if should_be_paid else "unpaid",
    )
    return True
