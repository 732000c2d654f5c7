"""
Order entry validation.

Runs before a request reaches the simulation engine; the engine assumes
well-formed input.
"""

from __future__ import annotations

from ..types import OrderKind, OrderRequest, OrderSide


def parse_float(text: str) -> float | None:
    try:
        return float(text.strip()) if text.strip() else 0.0
    except ValueError:
        return None


def validate_order_request(request: OrderRequest) -> dict[str, str]:
    """Return field -> message for every problem; an empty dict means valid."""
    errors: dict[str, str] = {}
    if request.kind == OrderKind.LIMIT and request.price <= 0:
        errors["price"] = "Price must be greater than 0"
    if request.quantity <= 0:
        errors["quantity"] = "Quantity must be greater than 0"
    if request.delay_sec < 0:
        errors["delay"] = "Delay must be 0 or greater"
    return errors


def build_order_request(
    kind: OrderKind,
    side: OrderSide,
    price_text: str,
    quantity_text: str,
    delay_text: str,
) -> tuple[OrderRequest | None, dict[str, str]]:
    """Parse raw form fields. Returns (request, {}) or (None, errors)."""
    errors: dict[str, str] = {}
    values: dict[str, float] = {}
    for field, text in (("price", price_text), ("quantity", quantity_text), ("delay", delay_text)):
        value = parse_float(text)
        if value is None:
            errors[field] = f"{field.capitalize()} must be a number"
        else:
            values[field] = value
    if errors:
        return None, errors

    request = OrderRequest(kind, side, values["price"], values["quantity"], values["delay"])
    errors = validate_order_request(request)
    if errors:
        return None, errors
    return request, {}
