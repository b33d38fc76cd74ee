"""Invoice creation and patch rules."""

from datetime import date

import pytest

from invoicing.extensions import db
from invoicing.models import InvoiceSale, Sale
from invoicing.validation import ConflictError, NotFoundError, ValidationError


class TestCreateInvoice:
    def test_totals_default_to_member_sales(self, make_sale, make_invoice):
        first = make_sale(12000)
        second = make_sale(3050)

        invoice = make_invoice([first, second])
        assert invoice.total_amount_ht_cents == 15050
        assert invoice.total_amount_ttc_cents == 15050
        assert invoice.is_paid is False
        assert invoice.paid_at is None

    def test_sales_are_marked_and_linked(self, make_sale, make_invoice):
        sale = make_sale(12000)
        invoice = make_invoice([sale])

        db.session.expire_all()
        row = db.session.get(Sale, sale.id)
        assert row.is_invoiced is True
        assert row.invoice_id == invoice.id
        assert db.session.query(InvoiceSale).filter_by(invoice_id=invoice.id, sale_id=sale.id).count() == 1

    def test_caller_paid_flags_are_ignored(self, make_sale, make_invoice):
        invoice = make_invoice([make_sale(12000)], is_paid=True, paid_at="2024-06-01T10:00:00Z")
        assert invoice.is_paid is False
        assert invoice.paid_at is None

    def test_explicit_totals_win(self, make_sale, make_invoice):
        invoice = make_invoice([make_sale(12000)], total_amount_ht_cents=10000, total_amount_ttc_cents=11900)
        assert invoice.total_amount_ht_cents == 10000
        assert invoice.total_amount_ttc_cents == 11900

    def test_duplicate_number_is_a_conflict(self, make_sale, make_invoice):
        make_invoice([make_sale(12000)], invoice_number="F-1")
        with pytest.raises(ConflictError):
            make_invoice([make_sale(12000)], invoice_number="F-1")

    def test_sale_already_invoiced_is_a_conflict(self, service, make_sale, make_invoice):
        sale = make_sale(12000)
        make_invoice([sale])
        with pytest.raises(ConflictError):
            make_invoice([sale])
        assert len(service.list_invoices()) == 1

    def test_sale_of_another_client_is_rejected(self, make_sale, make_invoice, other_client):
        foreign = make_sale(12000, client=other_client)
        with pytest.raises(ValidationError) as exc:
            make_invoice([foreign])
        assert exc.value.details == {"sale_id": foreign.id}

    def test_deleted_sale_is_rejected(self, service, make_sale, make_invoice):
        sale = make_sale(12000)
        service.delete_sale(sale.id)
        with pytest.raises(NotFoundError):
            make_invoice([sale])

    def test_due_date_before_date_is_rejected(self, make_sale, make_invoice):
        with pytest.raises(ValidationError):
            make_invoice([make_sale(12000)], due_date="2024-06-01")

    def test_duplicate_sale_ids_are_rejected(self, service, acme, make_sale):
        sale = make_sale(12000)
        with pytest.raises(ValidationError):
            service.create_invoice({
                "invoice_number": "F-X",
                "client_id": acme.id,
                "date": "2024-06-10",
                "sale_ids": [sale.id, sale.id],
            })

    def test_missing_number_is_rejected(self, service, acme):
        with pytest.raises(ValidationError):
            service.create_invoice({"client_id": acme.id, "date": "2024-06-10"})


class TestUpdateInvoice:
    def test_patch_changes_only_given_fields(self, service, make_sale, make_invoice):
        invoice = make_invoice([make_sale(12000)], notes="first draft")

        updated = service.update_invoice(invoice.id, {"due_date": "2024-07-10"})
        assert updated.due_date == date(2024, 7, 10)
        assert updated.notes == "first draft"
        assert updated.total_amount_ttc_cents == 12000

    def test_paid_flags_are_not_writable(self, service, make_sale, make_invoice):
        invoice = make_invoice([make_sale(12000)])
        with pytest.raises(ValidationError):
            service.update_invoice(invoice.id, {"is_paid": True})

    def test_due_date_checked_against_stored_date(self, service, make_sale, make_invoice):
        invoice = make_invoice([make_sale(12000)])
        with pytest.raises(ValidationError):
            service.update_invoice(invoice.id, {"due_date": "2024-01-01"})

    def test_renumbering_onto_existing_number_is_a_conflict(self, service, make_sale, make_invoice):
        make_invoice([make_sale(12000)], invoice_number="F-1")
        second = make_invoice([make_sale(12000)], invoice_number="F-2")
        with pytest.raises(ConflictError):
            service.update_invoice(second.id, {"invoice_number": "F-1"})

    def test_deleted_invoice_cannot_be_patched(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        make_payment(100, sale=sale)
        service.delete_invoice(invoice.id)

        with pytest.raises(NotFoundError):
            service.update_invoice(invoice.id, {"notes": "late"})


class TestInvoiceReads:
    def test_detail_lists_members_payments_and_summary(self, service, make_sale, make_invoice, make_payment):
        first = make_sale(12000)
        second = make_sale(8000)
        invoice = make_invoice([first, second])
        payment = make_payment(5000, sale=second)

        detail = service.get_invoice_detail(invoice.id)
        assert detail["invoice"]["id"] == invoice.id
        assert detail["sale_ids"] == [first.id, second.id]
        assert [p["id"] for p in detail["payments"]] == [payment.id]
        assert detail["summary"]["remaining_cents"] == 15000

    def test_list_hides_deleted_invoices(self, service, make_sale, make_invoice, make_payment):
        sale = make_sale(12000)
        invoice = make_invoice([sale])
        make_payment(100, sale=sale)
        service.delete_invoice(invoice.id)

        assert service.list_invoices() == []
        assert [i.id for i in service.list_invoices(include_deleted=True)] == [invoice.id]
