"""Payload coercion against model columns and write policies."""

from datetime import date
from decimal import Decimal

import pytest

from invoicing.models import Invoice, Sale
from invoicing.validation import (
    ModelValidationPolicy,
    ValidationError,
    apply_patch,
    enforce_rules_sale,
    validate_payload,
)


POLICY = ModelValidationPolicy(
    writable_fields={"client_id", "date", "tax_rate", "notes", "total_amount_cents"},
    required_on_create={"client_id", "date"},
)


def test_coerces_types():
    patch = validate_payload(
        model=Sale,
        payload={"client_id": "7", "date": "2024-06-10", "tax_rate": 0.19, "notes": "  hi "},
        policy=POLICY,
        partial=False,
    )
    assert patch == {"client_id": 7, "date": date(2024, 6, 10), "tax_rate": Decimal("0.19"), "notes": "hi"}


def test_missing_required_fields():
    with pytest.raises(ValidationError) as exc:
        validate_payload(model=Sale, payload={"notes": "x"}, policy=POLICY, partial=False)
    assert "client_id" in str(exc.value)


def test_partial_skips_required():
    assert validate_payload(model=Sale, payload={"notes": "x"}, policy=POLICY, partial=True) == {"notes": "x"}


@pytest.mark.parametrize("payload", [
    {"is_paid": True},
    {"client_id": 1.5},
    {"client_id": "1e3"},
    {"date": "10/06/2024"},
    {"tax_rate": "abc"},
    {"client_id": None},
])
def test_rejections(payload):
    with pytest.raises(ValidationError):
        validate_payload(model=Sale, payload=payload, policy=POLICY, partial=True)


def test_apply_patch_reports_changed_fields():
    invoice = Invoice(invoice_number="F-1", notes="a", total_amount_ttc_cents=100)
    changed = apply_patch(invoice, {"notes": "a", "total_amount_ttc_cents": 200})
    assert changed == {"total_amount_ttc_cents"}
    assert invoice.total_amount_ttc_cents == 200


def test_sale_rules():
    enforce_rules_sale({"tax_rate": Decimal("0"), "total_amount_cents": 0})
    with pytest.raises(ValidationError):
        enforce_rules_sale({"tax_rate": Decimal("1")})
    with pytest.raises(ValidationError):
        enforce_rules_sale({"total_amount_cents": -1})
