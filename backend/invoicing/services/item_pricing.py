# Overview: Validation and total derivation for sale line items (pure, no database access).

"""
Sale item pricing

Each steel product type derives its line total from its own measurements:

- coil:              price_per_ton * weight
- corrugated_sheet:  quantity * width * price_per_ton  (width holds the sheet length)
- steel_slitting:    price_per_ton * weight
- anything else:     the caller's total_amount_cents is kept as-is

Totals are rounded half-up to whole cents. Validation runs over the whole
item list before anything is written, so one bad item rejects the sale.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable

from ..models.sales import PRODUCT_COIL, PRODUCT_CORRUGATED_SHEET, PRODUCT_STEEL_SLITTING
from ..validation import ValidationError, to_decimal, MAX_AMOUNT_CENTS


MEASUREMENT_FIELDS = ("thickness", "width", "weight", "quantity")

ITEM_FIELDS = {
    "description",
    "product_type",
    *MEASUREMENT_FIELDS,
    "price_per_ton_cents",
    "total_amount_cents",
}

# Fields that must be present and > 0 for each derived product type
REQUIRED_POSITIVE = {
    PRODUCT_COIL: ("thickness", "width", "weight"),
    PRODUCT_CORRUGATED_SHEET: ("width", "quantity"),
    PRODUCT_STEEL_SLITTING: ("weight", "quantity"),
}

CENT = Decimal("1")


def _item_error(index: int, field: str, message: str) -> ValidationError:
    return ValidationError(
        f"Item {index + 1}: {message}",
        details={"item_index": index, "field": field},
    )


def _to_cents(value: Any, index: int, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise _item_error(index, field, f"{field} must be an integer amount in cents")
    if value < 0:
        raise _item_error(index, field, f"{field} cannot be negative")
    if value > MAX_AMOUNT_CENTS:
        raise _item_error(index, field, f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return value


def normalize_item(raw: dict, index: int) -> dict:
    """
    Coerce one raw item payload into typed values.

    Unknown keys are rejected; measurements become Decimal, amounts stay
    integer cents.
    """
    if not isinstance(raw, dict):
        raise _item_error(index, "item", "must be an object")

    unknown = sorted(set(raw) - ITEM_FIELDS)
    if unknown:
        raise _item_error(index, unknown[0], f"field not allowed: {unknown[0]}")

    item = {
        "description": str(raw.get("description") or "").strip(),
        "product_type": str(raw.get("product_type") or "").strip(),
    }
    for field in MEASUREMENT_FIELDS:
        try:
            item[field] = to_decimal(raw.get(field), field)
        except ValidationError as exc:
            raise _item_error(index, field, str(exc))

    price = _to_cents(raw.get("price_per_ton_cents"), index, "price_per_ton_cents")
    item["price_per_ton_cents"] = price if price is not None else 0
    item["total_amount_cents"] = _to_cents(raw.get("total_amount_cents"), index, "total_amount_cents")
    return item


def validate_item(item: dict, index: int = 0) -> None:
    """Reject an item that cannot be priced. Raises ValidationError."""
    if not item.get("description"):
        raise _item_error(index, "description", "description is required")

    product_type = item.get("product_type")
    if not product_type:
        raise _item_error(index, "product_type", "product_type is required")

    required = REQUIRED_POSITIVE.get(product_type)
    if required is None:
        if item.get("total_amount_cents") is None:
            raise _item_error(
                index, "total_amount_cents",
                f"total_amount_cents is required for product type '{product_type}'",
            )
        return

    for field in required:
        value = item.get(field)
        if value is None or value <= 0:
            raise _item_error(index, field, f"{field} must be greater than 0 for {product_type}")


def compute_item_total(item: dict) -> int:
    """Line total in cents for an already validated item."""
    product_type = item["product_type"]
    price = Decimal(item.get("price_per_ton_cents") or 0)

    if product_type in (PRODUCT_COIL, PRODUCT_STEEL_SLITTING):
        total = price * item["weight"]
    elif product_type == PRODUCT_CORRUGATED_SHEET:
        total = item["quantity"] * item["width"] * price
    else:
        return item["total_amount_cents"]

    return int(total.quantize(CENT, rounding=ROUND_HALF_UP))


def prepare_items(raw_items: Iterable[dict] | None) -> list[dict]:
    """
    Normalize, validate and price a full item list.

    Returns a list of column dicts ready for SaleItem(**item).
    """
    if raw_items is None:
        raw_items = []
    if not isinstance(raw_items, (list, tuple)):
        raise ValidationError("items must be a list")

    prepared = []
    for index, raw in enumerate(raw_items):
        item = normalize_item(raw, index)
        validate_item(item, index)
        item["total_amount_cents"] = compute_item_total(item)
        if item["total_amount_cents"] > MAX_AMOUNT_CENTS:
            raise _item_error(index, "total_amount_cents", f"total_amount_cents cannot exceed {MAX_AMOUNT_CENTS}")
        prepared.append(item)
    return prepared


def items_subtotal_cents(items: Iterable[dict]) -> int:
    return sum(item["total_amount_cents"] for item in items)


def compute_ttc_cents(total_ht_cents: int, tax_rate: Decimal, transportation_fee_cents: int = 0) -> int:
    """Tax-inclusive total: HT * (1 + tax_rate) + transport, rounded half-up."""
    taxed = (Decimal(total_ht_cents) * (Decimal("1") + tax_rate)).quantize(CENT, rounding=ROUND_HALF_UP)
    return int(taxed) + transportation_fee_cents
