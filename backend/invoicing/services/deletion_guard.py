# Overview: Vetoes destructive operations and picks hard vs soft deletion for invoices.

from __future__ import annotations

import enum
import logging

from ..models import Invoice, Sale
from ..validation import ConflictError
from .repository import LedgerRepository


logger = logging.getLogger(__name__)


class DeletionMode(enum.Enum):
    HARD = "hard"
    SOFT = "soft"


class DeletionGuard:
    """
    Decides whether a deletion may happen and how.

    - Invoice: only a draft (unpaid, no live payment) may be physically
      removed; anything that ever received money is soft-deleted.
    - Sale: refused outright when any linked invoice is paid.
    """

    def __init__(self, repository: LedgerRepository):
        self.repository = repository

    def choose_deletion_mode(self, invoice: Invoice) -> DeletionMode:
        payment_count = self.repository.live_payment_count(invoice.id)
        if not invoice.is_paid and payment_count == 0:
            mode = DeletionMode.HARD
        else:
            mode = DeletionMode.SOFT
        logger.debug(
            "Invoice %s deletion mode %s (is_paid=%s, live payments=%s)",
            invoice.id, mode.value, invoice.is_paid, payment_count,
        )
        return mode

    def ensure_sale_deletable(self, sale: Sale, invoices: list[Invoice]) -> None:
        """
        Raises ConflictError if deleting the sale would erase history behind a
        paid invoice. Called before any row is touched.
        """
        for invoice in invoices:
            if invoice.is_paid:
                raise ConflictError(
                    f"Cannot delete sale {sale.id}: invoice {invoice.invoice_number} is paid"
                )
