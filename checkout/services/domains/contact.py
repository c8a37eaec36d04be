"""Checkout input normalization.

Customer and shipping payloads arrive with many alternate spellings
(camelCase, snake_case, legacy keys). They are folded into one canonical
shape here, once, at intent creation. Nothing downstream re-reads the raw
payload.
"""
from typing import Any, Iterable, Sequence

from checkout.errors import (
    ERROR_EMPTY_CART,
    ERROR_INVALID_ITEM,
    IncompleteShippingAddress,
    ValidationError,
)
from checkout.services.models import CartLine, CustomerInfo, ShippingAddress

DEFAULT_COUNTRY = "India"
DEFAULT_VARIANT_SELECTOR = "default"

REQUIRED_ADDRESS_FIELDS: tuple[str, ...] = ("address", "city", "state", "postal_code", "phone")

# (source, keys) in precedence order; "shipping" wins over "customer"
_ADDRESS_PRECEDENCE: dict[str, Sequence[tuple[str, Sequence[str]]]] = {
    "address": (
        ("shipping", ("address", "addressLine1", "address_line1", "line1")),
        ("customer", ("address", "addressLine1", "address_line1")),
    ),
    "city": (("shipping", ("city",)), ("customer", ("city",))),
    "state": (("shipping", ("state",)), ("customer", ("state",))),
    "postal_code": (
        ("shipping", ("postalCode", "postal_code", "postal", "pincode", "zip")),
        ("customer", ("pincode", "postalCode", "postal_code")),
    ),
    "phone": (
        ("shipping", ("phone",)),
        ("customer", ("phone", "mobileNumber", "mobile_number", "mobile")),
    ),
    "country": (("shipping", ("country",)), ("customer", ("country",))),
}


def _first(source: dict[str, Any], keys: Iterable[str]) -> str:
    for key in keys:
        value = source.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def _full_name(shipping: dict[str, Any], customer: dict[str, Any]) -> str:
    name = _first(shipping, ("fullName", "full_name", "name")) or _first(
        customer, ("fullName", "full_name", "name")
    )
    if name:
        return name
    first = _first(customer, ("firstName", "first_name"))
    last = _first(customer, ("lastName", "last_name"))
    return " ".join(part for part in (first, last) if part)


def normalize_contact(
    customer_info: dict[str, Any] | None,
    shipping_address: dict[str, Any] | None,
) -> tuple[CustomerInfo, ShippingAddress]:
    """Fold raw customer/shipping payloads into canonical models.

    Does not validate completeness; see ``require_complete_address``.
    """
    sources = {
        "shipping": shipping_address or {},
        "customer": customer_info or {},
    }

    resolved: dict[str, str] = {}
    for field, precedence in _ADDRESS_PRECEDENCE.items():
        value = ""
        for source_name, keys in precedence:
            value = _first(sources[source_name], keys)
            if value:
                break
        resolved[field] = value

    full_name = _full_name(sources["shipping"], sources["customer"])
    address = ShippingAddress(
        full_name=full_name,
        address=resolved["address"],
        city=resolved["city"],
        state=resolved["state"],
        postal_code=resolved["postal_code"],
        country=resolved["country"] or DEFAULT_COUNTRY,
        phone=resolved["phone"],
    )
    customer = CustomerInfo(
        full_name=full_name,
        email=_first(sources["customer"], ("email",)) or _first(sources["shipping"], ("email",)) or None,
        phone=resolved["phone"] or None,
    )
    return customer, address


def missing_address_fields(address: ShippingAddress) -> list[str]:
    return [field for field in REQUIRED_ADDRESS_FIELDS if not getattr(address, field)]


def require_complete_address(address: ShippingAddress) -> None:
    """Raise IncompleteShippingAddress listing every empty required field."""
    missing = missing_address_fields(address)
    if missing:
        raise IncompleteShippingAddress(missing)


def _parse_quantity(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_cart_lines(items: Any) -> list[CartLine]:
    """Validate the item list shape and build CartLines.

    A variant selector is the explicit variant id, else a size other than
    "default", else none.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError(ERROR_EMPTY_CART)

    lines: list[CartLine] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(ERROR_INVALID_ITEM, index=index)

        product_id = _first(item, ("product_id", "productId", "_id"))
        quantity = _parse_quantity(item.get("quantity", item.get("qty")))
        if not product_id or quantity is None or quantity < 1:
            raise ValidationError(ERROR_INVALID_ITEM, index=index)

        variant = _first(item, ("variant_id", "variantId", "variant")) or None
        if variant is None:
            size = _first(item, ("size",))
            if size and size.lower() != DEFAULT_VARIANT_SELECTOR:
                variant = size

        lines.append(CartLine(product_id=product_id, variant=variant, quantity=quantity))
    return lines
