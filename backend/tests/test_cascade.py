"""Soft-delete / restore propagation across sales, payments and invoices."""

import pytest

from invoicing.extensions import db
from invoicing.models import Invoice, InvoiceSale, Payment, Sale
from invoicing.validation import ConflictError, NotFoundError


def _fresh(model, entity_id):
    db.session.expire_all()
    return db.session.get(model, entity_id)


def _links(invoice_id):
    return db.session.query(InvoiceSale).filter_by(invoice_id=invoice_id).count()


class TestSaleDelete:
    def test_sole_member_takes_invoice_down_and_back(self, service, make_sale, make_invoice):
        sale = make_sale(12000)
        invoice = make_invoice([sale])

        result = service.delete_sale(sale.id)
        assert result.invoices_deleted == [invoice.id]
        assert _fresh(Sale, sale.id).is_deleted is True
        assert _fresh(Invoice, invoice.id).is_deleted is True
        assert _links(invoice.id) == 0

        result = service.restore_sale(sale.id)
        assert result.invoices_restored == [invoice.id]
        assert _fresh(Sale, sale.id).is_deleted is False
        restored = _fresh(Invoice, invoice.id)
        assert restored.is_deleted is False
        assert restored.deleted_at is None
        assert _links(invoice.id) == 1

    def test_invoice_survives_while_another_member_is_live(self, service, make_sale, make_invoice):
        first = make_sale(12000)
        second = make_sale(8000)
        invoice = make_invoice([first, second])

        result = service.delete_sale(first.id)
        assert result.invoices_deleted == []
        assert _fresh(Invoice, invoice.id).is_deleted is False
        assert _links(invoice.id) == 1

        detail = service.get_invoice_detail(invoice.id)
        assert detail["sale_ids"] == [second.id]

    def test_payments_follow_the_sale(self, service, make_sale, make_invoice, make_payment):
        first = make_sale(12000)
        second = make_sale(12000)
        invoice = make_invoice([first, second])
        payment = make_payment(5000, sale=first)

        result = service.delete_sale(first.id)
        assert result.payments == [payment.id]
        assert _fresh(Payment, payment.id).is_deleted is True
        assert service.get_invoice_payment_summary(invoice.id)["total_paid_cents"] == 0

        service.restore_sale(first.id)
        assert _fresh(Payment, payment.id).is_deleted is False
        assert service.get_invoice_payment_summary(invoice.id)["total_paid_cents"] == 5000

    def test_member_of_a_paid_invoice_cannot_be_deleted(self, service, make_sale, make_invoice, make_payment):
        first = make_sale(12000)
        second = make_sale(12000)
        invoice = make_invoice([first, second], total_amount_ttc_cents=12000)
        make_payment(12000, sale=second)
        paid = _fresh(Invoice, invoice.id)
        assert paid.is_paid is True

        with pytest.raises(ConflictError):
            service.delete_sale(first.id)

    def test_uninvoiced_sale_deletes_alone(self, service, make_sale, make_payment):
        sale = make_sale(12000)
        payment = make_payment(3000, sale=sale)

        result = service.delete_sale(sale.id)
        assert result.sales == [sale.id]
        assert result.invoices_deleted == []
        assert _fresh(Payment, payment.id).is_deleted is True

    def test_deleted_sale_is_hidden(self, service, make_sale):
        sale = make_sale(12000)
        service.delete_sale(sale.id)

        with pytest.raises(NotFoundError):
            service.get_sale(sale.id)
        assert service.get_sale(sale.id, include_deleted=True).is_deleted is True
        assert sale.id not in [s.id for s in service.list_sales()]
        assert sale.id in [s.id for s in service.list_sales(include_deleted=True)]

    def test_deleting_twice_is_not_found(self, service, make_sale):
        sale = make_sale(12000)
        service.delete_sale(sale.id)
        with pytest.raises(NotFoundError):
            service.delete_sale(sale.id)


class TestSaleRestore:
    def test_restoring_a_live_sale_is_a_conflict(self, service, make_sale):
        sale = make_sale(12000)
        with pytest.raises(ConflictError):
            service.restore_sale(sale.id)

    def test_invoice_stays_deleted_until_every_member_is_back(self, service, make_sale, make_invoice):
        first = make_sale(12000)
        second = make_sale(8000)
        invoice = make_invoice([first, second])

        service.delete_sale(first.id)
        service.delete_sale(second.id)
        assert _fresh(Invoice, invoice.id).is_deleted is True

        result = service.restore_sale(first.id)
        assert result.invoices_restored == []
        assert _fresh(Invoice, invoice.id).is_deleted is True

        result = service.restore_sale(second.id)
        assert result.invoices_restored == [invoice.id]
        assert _fresh(Invoice, invoice.id).is_deleted is False
        assert _links(invoice.id) == 2

    def test_restore_reconciles_the_invoice(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        make_payment(6000, sale=sale)

        service.delete_sale(sale.id)
        service.restore_sale(sale.id)

        summary = service.get_invoice_payment_summary(invoice.id)
        assert summary["total_paid_cents"] == 6000
        assert _fresh(Invoice, invoice.id).is_paid is False


class TestInvoiceRestore:
    def test_soft_deleted_invoice_reattaches_its_sales(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        make_payment(2000, sale=sale)

        service.delete_invoice(invoice.id)
        detached = _fresh(Sale, sale.id)
        assert detached.invoice_id is None
        assert detached.is_invoiced is False

        result = service.restore_invoice(invoice.id)
        assert result.sales == [sale.id]
        reattached = _fresh(Sale, sale.id)
        assert reattached.invoice_id == invoice.id
        assert reattached.is_invoiced is True
        assert _fresh(Invoice, invoice.id).is_deleted is False

    def test_restore_refused_when_sale_was_reinvoiced(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        make_payment(2000, sale=sale)

        service.delete_invoice(invoice.id)
        make_invoice([sale])

        with pytest.raises(ConflictError):
            service.restore_invoice(invoice.id)
        assert _fresh(Invoice, invoice.id).is_deleted is True

    def test_restoring_a_live_invoice_is_a_conflict(self, service, make_sale, make_invoice):
        invoice = make_invoice([make_sale(12000)])
        with pytest.raises(ConflictError):
            service.restore_invoice(invoice.id)

    def test_invoice_taken_down_by_its_last_sale_stays_down(self, service, make_sale, make_invoice):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        service.delete_sale(sale.id)

        with pytest.raises(ConflictError, match="restore the sale"):
            service.restore_invoice(invoice.id)
        assert _fresh(Invoice, invoice.id).is_deleted is True
        assert _fresh(Sale, sale.id).is_deleted is True

        service.restore_sale(sale.id)
        assert _fresh(Invoice, invoice.id).is_deleted is False
        assert _links(invoice.id) == 1

    def test_restore_refused_once_every_sale_is_gone(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        make_payment(2000, sale=sale)
        service.delete_invoice(invoice.id)
        service.delete_sale(sale.id)

        with pytest.raises(ConflictError, match="no live sales"):
            service.restore_invoice(invoice.id)
        assert _fresh(Invoice, invoice.id).is_deleted is True
