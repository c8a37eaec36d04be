"""Coupon domain: static rule table and discount evaluation."""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping, Optional

from checkout.services.money import floor_money, percent, round_money, to_decimal


@dataclass(frozen=True)
class CouponRule:
    code: str
    discount_type: str  # "flat" | "percent"
    value: Decimal
    min_order: Decimal
    expires_at: datetime
    active: bool = True
    max_discount: Optional[Decimal] = None


@dataclass(frozen=True)
class CouponCheck:
    """Evaluation outcome. ``reason`` is set when the coupon does not apply."""
    code: str
    valid: bool
    discount: Decimal = Decimal("0")
    reason: Optional[str] = None


REASON_UNKNOWN = "unknown"
REASON_INACTIVE = "inactive"
REASON_EXPIRED = "expired"
REASON_BELOW_MINIMUM = "below_minimum"


def _utc(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


COUPON_RULES: dict[str, CouponRule] = {
    "FLAT100": CouponRule("FLAT100", "flat", Decimal("100"), Decimal("499"), _utc(2025, 9, 30)),
    "FIRST5": CouponRule("FIRST5", "percent", Decimal("5"), Decimal("299"), _utc(2025, 12, 18)),
    "FREESHIP": CouponRule("FREESHIP", "flat", Decimal("75"), Decimal("699"), _utc(2025, 5, 15)),
}


class CouponEvaluator:
    """Evaluates coupon codes against a rule table."""

    def __init__(self, rules: Mapping[str, CouponRule] | None = None):
        self.rules = dict(COUPON_RULES if rules is None else rules)

    def check(self, code: str, subtotal, now: datetime | None = None) -> CouponCheck:
        now = now or datetime.now(timezone.utc)
        normalized = (code or "").strip().upper()
        rule = self.rules.get(normalized)
        if rule is None:
            return CouponCheck(normalized, False, reason=REASON_UNKNOWN)
        if not rule.active:
            return CouponCheck(normalized, False, reason=REASON_INACTIVE)
        if rule.expires_at < now:
            return CouponCheck(normalized, False, reason=REASON_EXPIRED)

        subtotal = to_decimal(subtotal)
        if subtotal < rule.min_order:
            return CouponCheck(normalized, False, reason=REASON_BELOW_MINIMUM)

        if rule.discount_type == "percent":
            discount = floor_money(percent(subtotal, rule.value))
        else:
            discount = rule.value
        if rule.max_discount is not None:
            discount = min(discount, rule.max_discount)
        discount = round_money(max(Decimal("0"), min(discount, subtotal)))
        return CouponCheck(normalized, True, discount=discount)

    def evaluate(self, code: str | None, subtotal, now: datetime | None = None) -> Decimal:
        """Discount for code at subtotal; zero when the coupon does not apply."""
        if not code:
            return Decimal("0")
        return self.check(code, subtotal, now).discount
