"""Guarded deletion: paid-invoice veto and hard vs soft invoice deletion."""

import pytest

from invoicing.extensions import db
from invoicing.models import Invoice, InvoiceSale, Payment, Sale
from invoicing.services.deletion_guard import DeletionMode
from invoicing.validation import ConflictError


def _snapshot():
    db.session.expire_all()
    return {
        "sales": [(s.id, s.is_deleted, s.invoice_id, s.is_invoiced) for s in db.session.query(Sale).order_by(Sale.id)],
        "invoices": [(i.id, i.is_deleted, i.is_paid, i.paid_at) for i in db.session.query(Invoice).order_by(Invoice.id)],
        "payments": [(p.id, p.is_deleted, p.invoice_id) for p in db.session.query(Payment).order_by(Payment.id)],
        "links": db.session.query(InvoiceSale).count(),
    }


class TestPaidInvoiceVeto:
    def test_sale_under_paid_invoice_is_rejected_untouched(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        make_payment(12000, sale=sale)
        assert service.get_invoice(invoice.id).is_paid is True

        before = _snapshot()
        with pytest.raises(ConflictError) as exc:
            service.delete_sale(sale.id)
        assert invoice.invoice_number in str(exc.value)
        assert _snapshot() == before

    def test_sale_deletable_again_once_invoice_unpaid(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        payment = make_payment(12000, sale=sale)

        service.update_payment(payment.id, {"amount_cents": 100})
        result = service.delete_sale(sale.id)
        assert result.invoices_deleted == [invoice.id]


class TestInvoiceDeletionMode:
    def test_draft_invoice_is_removed(self, service, make_sale, make_invoice):
        first = make_sale(12000)
        second = make_sale(3000)
        invoice = make_invoice([first, second])

        mode = service.delete_invoice(invoice.id)

        assert mode is DeletionMode.HARD
        db.session.expire_all()
        assert db.session.get(Invoice, invoice.id) is None
        assert db.session.query(InvoiceSale).filter_by(invoice_id=invoice.id).count() == 0
        for sale_id in (first.id, second.id):
            sale = db.session.get(Sale, sale_id)
            assert sale.invoice_id is None
            assert sale.is_invoiced is False
            assert sale.is_deleted is False

    def test_hard_delete_releases_sales_for_a_new_invoice(self, service, make_sale, make_invoice):
        sale = make_sale(12000)
        invoice = make_invoice([sale], invoice_number="F-DRAFT")
        service.delete_invoice(invoice.id)

        again = make_invoice([sale], invoice_number="F-DRAFT")
        assert again.id != invoice.id

    def test_invoice_with_payments_is_soft_deleted(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        payment = make_payment(4000, sale=sale)

        mode = service.delete_invoice(invoice.id)

        assert mode is DeletionMode.SOFT
        db.session.expire_all()
        row = db.session.get(Invoice, invoice.id)
        assert row is not None
        assert row.is_deleted is True
        assert row.deleted_at is not None
        kept = db.session.get(Payment, payment.id)
        assert kept.is_deleted is False
        assert kept.invoice_id == invoice.id
        detached = db.session.get(Sale, sale.id)
        assert detached.invoice_id is None
        assert detached.is_invoiced is False

    def test_paid_invoice_is_soft_deleted(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        make_payment(12000, sale=sale)

        assert service.delete_invoice(invoice.id) is DeletionMode.SOFT

    def test_only_deleted_payments_still_allow_hard_delete(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        payment = make_payment(4000, sale=sale)
        service.delete_payment(payment.id)

        assert service.delete_invoice(invoice.id) is DeletionMode.HARD
        db.session.expire_all()
        assert db.session.get(Payment, payment.id).invoice_id is None
