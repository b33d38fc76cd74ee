# Overview: Public ledger operations; one atomic transaction per call, then an audit entry.

"""
Ledger Service

WHY: Single entry point for every mutation of sales, invoices and payments,
so that the cascade, the guard and the reconciler always run together.

DESIGN PRINCIPLES:
- The store session is injected; nothing here reaches for a global
- One logical operation = one transaction (atomic); any failure rolls back all
- The guard vetoes before any row is touched
- Every write that can move an invoice's paid sum or total reconciles it
- Audit is recorded after commit and can never undo the operation
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..models import Sale, Invoice, Payment
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    apply_patch,
    enforce_amount_cents,
    enforce_rules_invoice,
    enforce_rules_sale,
    ValidationError,
    ConflictError,
)
from .audit_service import AuditSink, NullAuditSink, DatabaseAuditSink, record_safely
from .cascade import CascadeController, CascadeResult
from .concurrency import atomic
from .deletion_guard import DeletionGuard, DeletionMode
from .item_pricing import prepare_items, items_subtotal_cents, compute_ttc_cents
from .reconciler import PaymentStatusReconciler
from .repository import LedgerRepository


logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CHECK = "check"
METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_CREDIT_CARD = "credit_card"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CHECK,
    METHOD_BANK_TRANSFER,
    METHOD_CREDIT_CARD,
]


# =============================================================================
# WRITE POLICIES
# =============================================================================

SALE_POLICY = ModelValidationPolicy(
    writable_fields={
        "client_id", "date", "total_amount_cents", "total_amount_ttc_cents",
        "tax_rate", "transportation_fee_cents", "notes",
    },
    required_on_create={"client_id", "date"},
)

INVOICE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "invoice_number", "client_id", "date", "due_date",
        "total_amount_ht_cents", "total_amount_ttc_cents", "notes",
    },
    required_on_create={"invoice_number", "client_id", "date"},
)

INVOICE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "invoice_number", "date", "due_date",
        "total_amount_ht_cents", "total_amount_ttc_cents", "notes",
    },
)

PAYMENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sale_id", "invoice_id", "client_id", "amount_cents",
        "date", "method", "check_number", "notes",
    },
    required_on_create={"client_id", "amount_cents", "date", "method"},
)

PAYMENT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"amount_cents", "date", "method", "check_number", "notes"},
)

# Derived on invoices; accepted and discarded on creation
INVOICE_DERIVED_FIELDS = ("is_paid", "paid_at")


def _require_int_list(value, field: str) -> list[int]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of ids")
    ids = []
    for raw in value:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError(f"{field} must contain integer ids")
        if raw in ids:
            raise ValidationError(f"{field} contains duplicate id {raw}")
        ids.append(raw)
    return ids


def _enforce_payment_method(method: str, check_number: str | None) -> None:
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}")
    if method == METHOD_CHECK and not check_number:
        raise ValidationError("check_number is required for check payments")
    if method != METHOD_CHECK and check_number:
        raise ValidationError("check_number is only allowed for check payments")


class LedgerService:
    """
    Sales, invoices and payments operations over one injected session.

    Args:
        session: SQLAlchemy session used as the ledger store
        audit_sink: where audit entries go (defaults to no-op)
    """

    def __init__(self, session, audit_sink: AuditSink | None = None):
        self.session = session
        self.audit_sink = audit_sink or NullAuditSink()
        self.repository = LedgerRepository(session)
        self.reconciler = PaymentStatusReconciler(self.repository)
        self.guard = DeletionGuard(self.repository)
        self.cascade = CascadeController(self.repository, self.reconciler, self.guard)

    def _audit(self, action: str, entity_type: str, entity_id: int, details: dict | None = None) -> None:
        record_safely(self.audit_sink, action, entity_type, entity_id, details)

    # =========================================================================
    # SALES
    # =========================================================================

    def _fill_sale_totals(self, patch: dict, items: list[dict] | None, sale: Sale | None = None) -> None:
        """
        Derive totals the caller left out.

        HT defaults to the sum of item totals; TTC to HT * (1 + tax_rate)
        plus transport.
        """
        touched = {"tax_rate", "transportation_fee_cents", "total_amount_cents"} & set(patch)
        if sale is None:
            patch.setdefault("tax_rate", Decimal("0"))
            patch.setdefault("transportation_fee_cents", 0)
        tax_rate = patch.get("tax_rate", sale.tax_rate if sale is not None else None)
        fee = patch.get("transportation_fee_cents", sale.transportation_fee_cents if sale is not None else None)
        tax_rate = tax_rate if tax_rate is not None else Decimal("0")
        fee = fee or 0

        if items is None:
            if sale is not None and touched and "total_amount_ttc_cents" not in patch:
                ht = patch.get("total_amount_cents", sale.total_amount_cents)
                patch["total_amount_ttc_cents"] = compute_ttc_cents(ht, tax_rate, fee)
            return
        if "total_amount_cents" not in patch:
            patch["total_amount_cents"] = items_subtotal_cents(items)
        if "total_amount_ttc_cents" not in patch:
            patch["total_amount_ttc_cents"] = compute_ttc_cents(patch["total_amount_cents"], tax_rate, fee)

    def create_sale(self, data: dict) -> Sale:
        """
        Create a sale with its items.

        Items are validated and priced before anything is written; the sale
        row and all item rows go in one transaction. Returns the re-read sale.
        """
        data = dict(data or {})
        raw_items = data.pop("items", [])
        patch = validate_payload(model=Sale, payload=data, policy=SALE_POLICY, partial=False)
        enforce_rules_sale(patch)
        items = prepare_items(raw_items)

        with atomic(self.session, "create_sale"):
            self.repository.get_client(patch["client_id"])
            self._fill_sale_totals(patch, items)
            enforce_rules_sale(patch)
            sale = self.repository.add_sale(Sale(**patch), items)
            sale_id = sale.id

        sale = self.repository.get_sale(sale_id)
        self._audit("sale.created", "sale", sale.id, {
            "client_id": sale.client_id,
            "items": len(sale.items),
            "total_amount_ttc_cents": sale.total_amount_ttc_cents,
        })
        return sale

    def update_sale(self, sale_id: int, data: dict) -> Sale:
        """
        Update a live sale.

        When "items" is present the item set is replaced wholesale (all old
        rows deleted, new rows inserted). Invoice status is reconciled
        afterwards only if the sale carries payments.
        """
        data = dict(data or {})
        replace_items = "items" in data
        raw_items = data.pop("items", None)
        patch = validate_payload(model=Sale, payload=data, policy=SALE_POLICY, partial=True)
        enforce_rules_sale(patch)
        items = prepare_items(raw_items) if replace_items else None

        with atomic(self.session, "update_sale"):
            sale = self.repository.get_sale(sale_id, lock=True)

            if "client_id" in patch and patch["client_id"] != sale.client_id:
                self.repository.get_client(patch["client_id"])
                if sale.is_invoiced or self.repository.payments_for_sale(sale.id, deleted=False):
                    raise ConflictError(f"Cannot move sale {sale.id} to another client: it is invoiced or has payments")

            self._fill_sale_totals(patch, items, sale)
            enforce_rules_sale(patch)
            changed = apply_patch(sale, patch)
            if items is not None:
                self.repository.replace_sale_items(sale, items)

            if self.repository.payments_for_sale(sale.id, deleted=False):
                self.reconciler.recompute_sale_status(sale.id)
                if sale.invoice_id is not None:
                    self.reconciler.recompute_invoice_status(sale.invoice_id)

        sale = self.repository.get_sale(sale_id)
        self._audit("sale.updated", "sale", sale.id, {
            "fields": sorted(changed),
            "items_replaced": items is not None,
        })
        return sale

    def delete_sale(self, sale_id: int) -> CascadeResult:
        """
        Soft-delete a sale with its payments; may soft-delete its invoice.

        Raises:
            ConflictError: a linked invoice is paid (nothing is modified)
        """
        with atomic(self.session, "delete_sale"):
            sale = self.repository.get_sale(sale_id, lock=True)
            result = self.cascade.delete_sale(sale)

        self._audit("sale.deleted", "sale", sale_id, result.to_dict())
        return result

    def restore_sale(self, sale_id: int) -> CascadeResult:
        with atomic(self.session, "restore_sale"):
            sale = self.repository.get_sale(sale_id, live=False, lock=True)
            result = self.cascade.restore_sale(sale)

        self._audit("sale.restored", "sale", sale_id, result.to_dict())
        return result

    def get_sale(self, sale_id: int, *, include_deleted: bool = False) -> Sale:
        return self.repository.get_sale(sale_id, live=not include_deleted)

    def list_sales(self, *, include_deleted: bool = False, client_id: int | None = None) -> list[Sale]:
        return self.repository.list_sales(include_deleted=include_deleted, client_id=client_id)

    # =========================================================================
    # INVOICES
    # =========================================================================

    def create_invoice(self, data: dict) -> Invoice:
        """
        Create an invoice over a set of sales.

        is_paid / paid_at start cleared whatever the caller sends. Payments
        already recorded on the sales are re-pointed to the new invoice and
        the invoice is reconciled if any of them is live.
        """
        data = dict(data or {})
        sale_ids = _require_int_list(data.pop("sale_ids", None), "sale_ids")
        for derived in INVOICE_DERIVED_FIELDS:
            data.pop(derived, None)
        patch = validate_payload(model=Invoice, payload=data, policy=INVOICE_CREATE_POLICY, partial=False)
        enforce_rules_invoice(patch)

        with atomic(self.session, "create_invoice"):
            self.repository.get_client(patch["client_id"])
            if self.repository.invoice_number_taken(patch["invoice_number"]):
                raise ConflictError(f"Invoice number {patch['invoice_number']} already exists")

            sales = []
            for sale_id in sale_ids:
                sale = self.repository.get_sale(sale_id, lock=True)
                if sale.client_id != patch["client_id"]:
                    raise ValidationError(
                        f"Sale {sale.id} belongs to client {sale.client_id}, not {patch['client_id']}",
                        details={"sale_id": sale.id},
                    )
                if sale.is_invoiced or sale.invoice_id is not None:
                    raise ConflictError(f"Sale {sale.id} is already invoiced (invoice {sale.invoice_id})")
                sales.append(sale)

            patch.setdefault("total_amount_ht_cents", sum(s.total_amount_cents for s in sales))
            patch.setdefault("total_amount_ttc_cents", sum(s.total_amount_ttc_cents for s in sales))

            invoice = Invoice(**patch, is_paid=False, paid_at=None, is_deleted=False)
            self.session.add(invoice)
            self.session.flush()
            result = self.cascade.attach_sales(invoice, sales)
            invoice_id = invoice.id

        invoice = self.repository.get_invoice(invoice_id)
        self._audit("invoice.created", "invoice", invoice.id, {
            "invoice_number": invoice.invoice_number,
            "sales": result.sales,
            "payments_repointed": result.payments,
            "total_amount_ttc_cents": invoice.total_amount_ttc_cents,
        })
        return invoice

    def update_invoice(self, invoice_id: int, data: dict) -> Invoice:
        """Patch a live invoice; a TTC change re-runs the reconciler."""
        patch = validate_payload(model=Invoice, payload=data, policy=INVOICE_UPDATE_POLICY, partial=True)
        enforce_rules_invoice(patch)

        with atomic(self.session, "update_invoice"):
            invoice = self.repository.get_invoice(invoice_id, lock=True)

            number = patch.get("invoice_number")
            if number and self.repository.invoice_number_taken(number, exclude_id=invoice.id):
                raise ConflictError(f"Invoice number {number} already exists")

            issued = patch.get("date", invoice.date)
            due = patch.get("due_date", invoice.due_date)
            if issued is not None and due is not None and due < issued:
                raise ValidationError("due_date cannot be before date")

            changed = apply_patch(invoice, patch)
            if "total_amount_ttc_cents" in changed:
                self.reconciler.recompute_invoice_status(invoice.id)

        invoice = self.repository.get_invoice(invoice_id)
        self._audit("invoice.updated", "invoice", invoice.id, {"fields": sorted(changed)})
        return invoice

    def delete_invoice(self, invoice_id: int) -> DeletionMode:
        """
        Delete an invoice; the deletion guard picks the mode.

        Returns:
            DeletionMode.HARD when the row is gone, DeletionMode.SOFT otherwise
        """
        with atomic(self.session, "delete_invoice"):
            invoice = self.repository.get_invoice(invoice_id, lock=True)
            invoice_number = invoice.invoice_number
            mode, result = self.cascade.delete_invoice(invoice)

        self._audit("invoice.deleted", "invoice", invoice_id, {
            "mode": mode.value,
            "invoice_number": invoice_number,
            **result.to_dict(),
        })
        return mode

    def restore_invoice(self, invoice_id: int) -> CascadeResult:
        with atomic(self.session, "restore_invoice"):
            invoice = self.repository.get_invoice(invoice_id, live=False, lock=True)
            result = self.cascade.restore_invoice(invoice)

        self._audit("invoice.restored", "invoice", invoice_id, result.to_dict())
        return result

    def get_invoice(self, invoice_id: int, *, include_deleted: bool = False) -> Invoice:
        return self.repository.get_invoice(invoice_id, live=not include_deleted)

    def get_invoice_detail(self, invoice_id: int, *, include_deleted: bool = False) -> dict:
        """Invoice with member sales, live payments and payment summary."""
        invoice = self.get_invoice(invoice_id, include_deleted=include_deleted)
        return {
            "invoice": invoice.to_dict(),
            "sale_ids": [s.id for s in self.repository.member_sales(invoice.id) if not s.is_deleted],
            "payments": [p.to_dict() for p in self.repository.live_payments_for_invoice(invoice.id)],
            "summary": self.reconciler.payment_summary(invoice.id),
        }

    def list_invoices(self, *, include_deleted: bool = False, client_id: int | None = None) -> list[Invoice]:
        return self.repository.list_invoices(include_deleted=include_deleted, client_id=client_id)

    def list_invoice_payments(self, invoice_id: int) -> list[Payment]:
        self.repository.get_invoice(invoice_id, live=False)
        return self.repository.live_payments_for_invoice(invoice_id)

    def get_invoice_payment_summary(self, invoice_id: int) -> dict:
        return self.reconciler.payment_summary(invoice_id)

    def recompute_invoices(self, invoice_id: int | None = None) -> int:
        """Re-run the reconciler over one invoice or every live one."""
        with atomic(self.session, "recompute_invoices"):
            if invoice_id is not None:
                ids = [self.repository.get_invoice(invoice_id).id]
            else:
                ids = [invoice.id for invoice in self.repository.list_invoices()]
            changed = self.reconciler.recompute_many(ids)
        if changed:
            logger.info("Reconciled %s invoice(s)", changed)
        return changed

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def _invoice_ids_for_payment(self, payment: Payment) -> set[int]:
        ids = {payment.invoice_id}
        if payment.sale_id is not None:
            sale = self.repository.get_sale(payment.sale_id, live=False)
            ids.add(sale.invoice_id)
        return {i for i in ids if i is not None}

    def _reconcile_payment(self, payment: Payment) -> None:
        self.reconciler.recompute_many(self._invoice_ids_for_payment(payment))
        if payment.sale_id is not None:
            self.reconciler.recompute_sale_status(payment.sale_id)

    def create_payment(self, data: dict) -> Payment:
        """
        Record a payment against a sale and/or an invoice.

        When the sale is invoiced, the payment carries the sale's invoice_id.

        Raises:
            ValidationError: bad amount/method, no target, client or invoice mismatch
            NotFoundError: unknown or deleted sale/invoice/client
        """
        patch = validate_payload(model=Payment, payload=data, policy=PAYMENT_CREATE_POLICY, partial=False)
        enforce_amount_cents(patch, "amount_cents", allow_zero=False)
        _enforce_payment_method(patch["method"], patch.get("check_number"))

        with atomic(self.session, "create_payment"):
            client_id = patch["client_id"]
            self.repository.get_client(client_id)

            sale_id = patch.get("sale_id")
            invoice_id = patch.get("invoice_id")
            if sale_id is None and invoice_id is None:
                raise ValidationError("A payment needs a sale_id or an invoice_id")

            if sale_id is not None:
                sale = self.repository.get_sale(sale_id, lock=True)
                if sale.client_id != client_id:
                    raise ValidationError(f"Sale {sale.id} does not belong to client {client_id}")
                if invoice_id is not None and invoice_id != sale.invoice_id:
                    raise ValidationError(
                        f"Sale {sale.id} is not on invoice {invoice_id}",
                        details={"sale_invoice_id": sale.invoice_id},
                    )
                patch["invoice_id"] = sale.invoice_id

            if patch.get("invoice_id") is not None:
                invoice = self.repository.get_invoice(patch["invoice_id"], lock=True)
                if invoice.client_id != client_id:
                    raise ValidationError(f"Invoice {invoice.id} does not belong to client {client_id}")

            payment = self.repository.add_payment(Payment(**patch))
            self._reconcile_payment(payment)
            payment_id = payment.id

        payment = self.repository.get_payment(payment_id)
        self._audit("payment.created", "payment", payment.id, {
            "amount_cents": payment.amount_cents,
            "method": payment.method,
            "sale_id": payment.sale_id,
            "invoice_id": payment.invoice_id,
        })
        return payment

    def update_payment(self, payment_id: int, data: dict) -> Payment:
        """Edit a live payment; an amount change reconciles its invoice and sale."""
        patch = validate_payload(model=Payment, payload=data, policy=PAYMENT_UPDATE_POLICY, partial=True)
        enforce_amount_cents(patch, "amount_cents", allow_zero=False)

        with atomic(self.session, "update_payment"):
            payment = self.repository.get_payment(payment_id, lock=True)
            method = patch.get("method", payment.method)
            check_number = patch["check_number"] if "check_number" in patch else payment.check_number
            if "method" in patch and method != METHOD_CHECK and "check_number" not in patch:
                # switching away from check drops the check number
                check_number = None
                patch["check_number"] = None
            _enforce_payment_method(method, check_number)

            changed = apply_patch(payment, patch)
            if "amount_cents" in changed:
                self._reconcile_payment(payment)

        payment = self.repository.get_payment(payment_id)
        self._audit("payment.updated", "payment", payment.id, {"fields": sorted(changed)})
        return payment

    def delete_payment(self, payment_id: int) -> Payment:
        """Soft-delete a payment and reconcile what it was paying for."""
        with atomic(self.session, "delete_payment"):
            payment = self.repository.get_payment(payment_id, lock=True)
            payment.is_deleted = True
            payment.deleted_at = utcnow()
            self.session.flush()
            self._reconcile_payment(payment)

        self._audit("payment.deleted", "payment", payment_id)
        return self.repository.get_payment(payment_id, live=False)

    def restore_payment(self, payment_id: int) -> Payment:
        with atomic(self.session, "restore_payment"):
            payment = self.repository.get_payment(payment_id, live=False, lock=True)
            if not payment.is_deleted:
                raise ConflictError(f"Payment {payment.id} is not deleted")
            if payment.sale_id is not None:
                sale = self.repository.get_sale(payment.sale_id, live=False)
                if sale.is_deleted:
                    raise ConflictError(
                        f"Cannot restore payment {payment.id}: sale {sale.id} is deleted (restore the sale instead)"
                    )
            payment.is_deleted = False
            payment.deleted_at = None
            self.session.flush()
            self._reconcile_payment(payment)

        self._audit("payment.restored", "payment", payment_id)
        return self.repository.get_payment(payment_id)

    def get_payment(self, payment_id: int, *, include_deleted: bool = False) -> Payment:
        return self.repository.get_payment(payment_id, live=not include_deleted)

    def list_payments(self, *, include_deleted: bool = False, client_id: int | None = None) -> list[Payment]:
        return self.repository.list_payments(include_deleted=include_deleted, client_id=client_id)


def get_ledger_service() -> LedgerService:
    """LedgerService bound to the request's Flask-SQLAlchemy session."""
    from flask import current_app
    from ..extensions import db

    if current_app.config.get("AUDIT_ENABLED", True):
        sink = DatabaseAuditSink(db.session)
    else:
        sink = NullAuditSink()
    return LedgerService(db.session, audit_sink=sink)
