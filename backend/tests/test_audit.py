"""Audit entries are written after commit and never break the operation."""

import logging

import pytest

from invoicing.extensions import db
from invoicing.models import AuditLog, Sale
from invoicing.services.audit_service import AuditSink, NullAuditSink, list_audit_log, record_safely
from invoicing.services.deletion_guard import DeletionMode
from invoicing.services.ledger_service import LedgerService
from invoicing.validation import ConflictError


class ExplodingSink(AuditSink):
    def __init__(self):
        self.calls = 0

    def record(self, action, entity_type, entity_id, details=None):
        self.calls += 1
        raise RuntimeError("audit store offline")


def _items(total=12000):
    return [{"description": "Cutting", "product_type": "service", "total_amount_cents": total}]


def test_each_mutation_is_recorded(service, acme):
    sale = service.create_sale({"client_id": acme.id, "date": "2024-06-10", "items": _items()})
    invoice = service.create_invoice({
        "invoice_number": "F-1", "client_id": acme.id, "date": "2024-06-10", "sale_ids": [sale.id],
    })
    payment = service.create_payment({
        "client_id": acme.id, "sale_id": sale.id, "amount_cents": 100, "date": "2024-06-11", "method": "cash",
    })
    service.delete_payment(payment.id)

    actions = [entry.action for entry in reversed(list_audit_log(db.session))]
    assert actions == ["sale.created", "invoice.created", "payment.created", "payment.deleted"]

    entry = list_audit_log(db.session, entity_type="invoice", entity_id=invoice.id)[0]
    assert entry.to_dict()["details"]["invoice_number"] == "F-1"


def test_invoice_delete_entry_carries_mode(service, make_sale, make_invoice):
    invoice = make_invoice([make_sale(12000)])
    assert service.delete_invoice(invoice.id) is DeletionMode.HARD

    entry = list_audit_log(db.session, entity_type="invoice", limit=1)[0]
    assert entry.action == "invoice.deleted"
    assert entry.to_dict()["details"]["mode"] == "hard"


def test_failing_sink_is_logged_and_operation_commits(db_session, acme, caplog):
    sink = ExplodingSink()
    service = LedgerService(db_session, audit_sink=sink)

    with caplog.at_level(logging.ERROR, logger="invoicing.services.audit_service"):
        sale = service.create_sale({"client_id": acme.id, "date": "2024-06-10", "items": _items()})

    assert sink.calls == 1
    assert "Audit record failed: sale.created" in caplog.text
    db.session.expire_all()
    assert db.session.get(Sale, sale.id) is not None


def test_rejected_operation_writes_no_entry(service, make_sale, make_invoice, make_payment):
    sale = make_sale(12000)
    make_invoice([sale])
    make_payment(12000, sale=sale)
    before = db.session.query(AuditLog).count()

    with pytest.raises(ConflictError):
        service.delete_sale(sale.id)
    assert db.session.query(AuditLog).count() == before


def test_null_sink_and_record_safely():
    assert record_safely(NullAuditSink(), "sale.created", "sale", 1) is True
    assert record_safely(ExplodingSink(), "sale.created", "sale", 1) is False


def test_audit_can_be_disabled(app, db_session, acme):
    from invoicing.services.ledger_service import get_ledger_service

    app.config["AUDIT_ENABLED"] = False
    try:
        service = get_ledger_service()
        assert isinstance(service.audit_sink, NullAuditSink)
        service.create_sale({"client_id": acme.id, "date": "2024-06-10", "items": _items()})
    finally:
        app.config["AUDIT_ENABLED"] = True

    assert db.session.query(AuditLog).count() == 0
