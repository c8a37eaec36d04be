"""Coupons Router"""

from fastapi import APIRouter, Depends

from checkout.errors import InvalidCoupon
from checkout.services.money import to_float

from .deps import get_coupon_evaluator
from .models import ValidateCouponRequest

router = APIRouter(prefix="/api/coupons", tags=["coupons"])


@router.post("/validate")
async def validate_coupon(request: ValidateCouponRequest, evaluator=Depends(get_coupon_evaluator)):
    """Preview a coupon against a subtotal. Totals are recomputed at checkout."""
    check = evaluator.check(request.code, request.subtotal)
    if not check.valid:
        raise InvalidCoupon(f"Coupon {check.code or request.code} cannot be applied", reason=check.reason)
    return {
        "valid": True,
        "code": check.code,
        "discount": to_float(check.discount),
    }
