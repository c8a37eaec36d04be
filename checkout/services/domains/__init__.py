"""Domain services for checkout pricing.

Usage:
    from checkout.services.domains import CatalogReader, TotalsCalculator

    calculator = TotalsCalculator(CatalogReader(products_repo))
    totals = await calculator.compute(lines, coupon_code="FIRST5")
"""
from .catalog import CatalogReader
from .contact import normalize_contact, parse_cart_lines, require_complete_address
from .coupons import COUPON_RULES, CouponCheck, CouponEvaluator, CouponRule
from .totals import PricingPolicy, TotalsCalculator

__all__ = [
    "COUPON_RULES",
    "CatalogReader",
    "CouponCheck",
    "CouponEvaluator",
    "CouponRule",
    "PricingPolicy",
    "TotalsCalculator",
    "normalize_contact",
    "parse_cart_lines",
    "require_complete_address",
]
