"""Totals domain: builds the immutable monetary snapshot for a cart."""
import os
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from checkout.errors import ERROR_INVALID_AMOUNT, InsufficientStock, InvalidAmount
from checkout.services.models import CartLine, Totals, TotalsLine
from checkout.services.money import percent, round_money, to_decimal, to_minor_units

from .catalog import CatalogReader
from .coupons import CouponEvaluator


@dataclass(frozen=True)
class PricingPolicy:
    """Shipping, tax and minimum-charge constants."""
    free_shipping_threshold: Decimal = Decimal("499")
    flat_shipping_fee: Decimal = Decimal("99")
    tax_rate_percent: Decimal = Decimal("0")
    min_payable_minor_units: int = 100
    currency: str = "INR"

    @classmethod
    def from_env(cls) -> "PricingPolicy":
        return cls(
            free_shipping_threshold=to_decimal(os.environ.get("SHIPPING_FREE_THRESHOLD", "499")),
            flat_shipping_fee=to_decimal(os.environ.get("SHIPPING_FLAT_FEE", "99")),
            tax_rate_percent=to_decimal(os.environ.get("TAX_RATE_PERCENT", "0")),
            min_payable_minor_units=int(os.environ.get("MIN_PAYABLE_MINOR_UNITS", "100")),
            currency=os.environ.get("CURRENCY", "INR"),
        )

    def shipping_fee(self, subtotal: Decimal) -> Decimal:
        if subtotal >= self.free_shipping_threshold:
            return Decimal("0")
        return round_money(self.flat_shipping_fee)

    def tax(self, taxable: Decimal) -> Decimal:
        if self.tax_rate_percent <= 0 or taxable <= 0:
            return Decimal("0")
        return round_money(percent(taxable, self.tax_rate_percent))


class TotalsCalculator:
    """Combines catalog prices, shipping policy and coupons into Totals."""

    def __init__(
        self,
        catalog: CatalogReader,
        coupons: CouponEvaluator | None = None,
        policy: PricingPolicy | None = None,
    ):
        self.catalog = catalog
        self.coupons = coupons or CouponEvaluator()
        self.policy = policy or PricingPolicy.from_env()

    async def check_stock(self, lines: Sequence[CartLine]) -> list[TotalsLine]:
        """
        Resolve every line against the catalog and check requested quantities.

        Raises:
            ProductNotFound / VariantNotFound: line does not resolve
            InsufficientStock: lists every short line, not just the first
        """
        totals_lines: list[TotalsLine] = []
        shortfalls: list[dict] = []

        for line in lines:
            resolved = await self.catalog.resolve_line(line.product_id, line.variant)
            if line.quantity > resolved.available_stock:
                shortfalls.append({
                    "product_id": line.product_id,
                    "variant": line.variant,
                    "display_name": resolved.display_name,
                    "requested": line.quantity,
                    "available": max(resolved.available_stock, 0),
                })
                continue
            totals_lines.append(TotalsLine(
                product_id=resolved.product_id,
                variant_id=resolved.variant_id,
                variant=line.variant,
                display_name=resolved.display_name,
                unit_price=resolved.unit_price,
                quantity=line.quantity,
                line_total=round_money(resolved.unit_price * line.quantity),
            ))

        if shortfalls:
            raise InsufficientStock(shortfalls)
        return totals_lines

    async def compute(
        self,
        lines: Sequence[CartLine],
        coupon_code: str | None = None,
        now: datetime | None = None,
    ) -> Totals:
        """
        Compute totals from live catalog state.

        Stock is checked, not reserved: a concurrent checkout can still take
        the last unit before this cart is paid.

        Raises:
            ProductNotFound / VariantNotFound: line does not resolve
            InsufficientStock: one or more lines exceed available stock
            InvalidAmount: payable amount below the configured minimum
        """
        totals_lines = await self.check_stock(lines)

        subtotal = round_money(sum((l.line_total for l in totals_lines), Decimal("0")))
        shipping_fee = self.policy.shipping_fee(subtotal)
        discount = self.coupons.evaluate(coupon_code, subtotal, now)
        tax = self.policy.tax(subtotal - discount)
        total = round_money(subtotal + shipping_fee + tax - discount)
        total_minor_units = to_minor_units(total)

        if total_minor_units <= 0 or total_minor_units < self.policy.min_payable_minor_units:
            raise InvalidAmount(ERROR_INVALID_AMOUNT, total_minor_units=total_minor_units)

        return Totals(
            subtotal=subtotal,
            shipping_fee=shipping_fee,
            tax=tax,
            discount_amount=discount,
            total=total,
            total_minor_units=total_minor_units,
            currency=self.policy.currency,
            coupon_code=coupon_code.strip().upper() if coupon_code and discount > 0 else None,
            lines=totals_lines,
        )
