"""
Point-of-sale payload builder.

Turns a cart into the header-plus-lines payload that ``hera_txn_emit_v1``
expects. Line amounts are signed: discounts are negative, tax and
payments positive. The header total is the amount owed
(subtotal - discount + tax); payment lines settle it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

from ..core.errors import ValidationError

POS_TRANSACTION_TYPE = "SALE"
POS_SALE_SMART_CODE = "HERA.SALON.POS.SALE.TXN.RETAIL.v1"

LINE_SMART_CODES = {
    "ITEM": "HERA.SALON.POS.LINE.ITEM.v1",
    "DISCOUNT": "HERA.SALON.POS.LINE.DISCOUNT.v1",
    "TAX": "HERA.SALON.POS.LINE.TAX.v1",
    "PAYMENT": "HERA.SALON.POS.LINE.PAYMENT.v1",
}

_CENT = Decimal("0.01")


def _money(value: Any, name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        amount = Decimal(str(value if value is not None else 0))
    except ArithmeticError:
        raise ValidationError(f"{name} must be a number") from None
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a number")
    if amount < 0:
        raise ValidationError(f"{name} must not be negative")
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def _get(item: Any, key: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(key, default)
    return getattr(item, key, default)


def _line(number: int, line_type: str, amount: Decimal, description: str, **extra: Any) -> dict[str, Any]:
    line = {
        "line_number": number,
        "line_type": line_type,
        "description": description,
        "quantity": 1,
        "unit_amount": float(amount),
        "line_amount": float(amount),
        "smart_code": LINE_SMART_CODES[line_type],
    }
    line.update(extra)
    return line


def build_pos_emit_payload(
    items: Iterable[Any],
    *,
    discount: Any = 0,
    tax: Any = 0,
    paid: Any = 0,
    organization_id: str | None = None,
    customer_id: str | None = None,
    staff_id: str | None = None,
    branch_id: str | None = None,
    payment_method: str = "cash",
    currency: str = "USD",
    transaction_date: datetime | None = None,
) -> dict[str, Any]:
    """
    Build a ``hera_txn_emit_v1`` payload for a retail sale.

    Each cart item needs ``product_id``, ``qty`` and ``price``. One ITEM
    line is emitted per item, then DISCOUNT, TAX and PAYMENT lines for
    whichever of those amounts is above zero.

    Raises:
        ValidationError: empty cart, non-positive quantity, negative
            amounts, or a discount larger than the subtotal
    """
    cart = list(items)
    if not cart:
        raise ValidationError("Cart is empty")

    discount_amt = _money(discount, "discount")
    tax_amt = _money(tax, "tax")
    paid_amt = _money(paid, "paid")

    lines: list[dict[str, Any]] = []
    subtotal = Decimal(0)
    for index, item in enumerate(cart):
        product_id = _get(item, "product_id")
        if not product_id:
            raise ValidationError(f"items[{index}].product_id is required")
        try:
            qty = Decimal(str(_get(item, "qty", 0)))
        except ArithmeticError:
            raise ValidationError(f"items[{index}].qty must be a number") from None
        if not qty.is_finite() or qty <= 0:
            raise ValidationError(f"items[{index}].qty must be greater than zero")
        price = _money(_get(item, "price"), f"items[{index}].price")
        amount = (qty * price).quantize(_CENT, rounding=ROUND_HALF_UP)
        subtotal += amount
        lines.append(
            {
                "line_number": len(lines) + 1,
                "line_type": "ITEM",
                "description": _get(item, "name") or f"Product {product_id}",
                "entity_id": str(product_id),
                "quantity": float(qty),
                "unit_amount": float(price),
                "line_amount": float(amount),
                "smart_code": LINE_SMART_CODES["ITEM"],
            }
        )

    if discount_amt > subtotal:
        raise ValidationError("discount exceeds the cart subtotal")

    if discount_amt > 0:
        lines.append(_line(len(lines) + 1, "DISCOUNT", -discount_amt, "Discount"))
    if tax_amt > 0:
        lines.append(_line(len(lines) + 1, "TAX", tax_amt, "Tax"))

    total = subtotal - discount_amt + tax_amt
    if paid_amt > 0:
        lines.append(
            _line(
                len(lines) + 1,
                "PAYMENT",
                paid_amt,
                f"Payment ({payment_method})",
                line_data={"payment_method": payment_method},
            )
        )

    business_context: dict[str, Any] = {
        "source": "pos",
        "subtotal": float(subtotal),
        "discount": float(discount_amt),
        "tax": float(tax_amt),
        "paid": float(paid_amt),
        "change_due": float(max(paid_amt - total, Decimal(0))),
        "balance_due": float(max(total - paid_amt, Decimal(0))),
    }
    if branch_id:
        business_context["branch_id"] = branch_id
    if staff_id:
        business_context["staff_id"] = staff_id

    payload: dict[str, Any] = {
        "transaction_type": POS_TRANSACTION_TYPE,
        "smart_code": POS_SALE_SMART_CODE,
        "transaction_date": (transaction_date or datetime.now(timezone.utc)).isoformat(),
        "transaction_currency_code": currency,
        "total_amount": float(total),
        "transaction_status": "completed" if paid_amt >= total else "pending",
        "business_context": business_context,
        "lines": lines,
    }
    if organization_id:
        payload["organization_id"] = organization_id
    if customer_id:
        payload["source_entity_id"] = customer_id
    if staff_id:
        payload["target_entity_id"] = staff_id
    return payload
