# teeprice/integrations.py
"""
Third-party integrations for the quote flow
- Coupons: Mock (codes from PROMO_CODES until the coupon service API is wired in)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from teeprice.config import load_promo_codes

logger = logging.getLogger(__name__)


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class Coupon:
    code: str
    discount_type: DiscountType
    discount_value: float


class CouponRejected(Exception):
    """Raised by a coupon service when a code is unknown, expired, or not for this user."""
    pass


class CouponService:
    """Interface of the external coupon-validation collaborator."""

    def validate_coupon(
        self, code: str, user_id: Optional[str] = None, user_email: Optional[str] = None
    ) -> Coupon:
        raise NotImplementedError


class MockCouponService(CouponService):
    """Mock coupon validation - Replace with the real coupon API when available"""

    def __init__(self, codes: Optional[Mapping[str, Mapping]] = None):
        self.codes = {str(k).strip().upper(): dict(v) for k, v in (codes or {}).items()}

    def validate_coupon(
        self, code: str, user_id: Optional[str] = None, user_email: Optional[str] = None
    ) -> Coupon:
        key = str(code or "").strip().upper()
        spec = self.codes.get(key)
        if not spec:
            raise CouponRejected(f"Unknown coupon {key!r}")
        try:
            return Coupon(
                code=key,
                discount_type=DiscountType(str(spec.get("discount_type", "")).strip().lower()),
                discount_value=float(spec.get("discount_value") or 0),
            )
        except ValueError as e:
            raise CouponRejected(f"Misconfigured coupon {key!r}") from e


def calculate_discount(
    coupons: CouponService,
    amount_usd: float,
    promo_code: Optional[str],
    user_id: Optional[str] = None,
    user_email: Optional[str] = None,
) -> float:
    """
    Discount in USD for a promo code against a subtotal.
    A rejected coupon is not an error for the quote; it just means no discount.
    """
    if not promo_code:
        return 0.0

    try:
        coupon = coupons.validate_coupon(promo_code, user_id=user_id, user_email=user_email)
    except CouponRejected as e:
        logger.info("[COUPON] %s", e)
        return 0.0

    if coupon.discount_type == DiscountType.PERCENTAGE:
        return amount_usd * (coupon.discount_value / 100)
    return min(coupon.discount_value, amount_usd)


def coupon_service_from_env() -> MockCouponService:
    return MockCouponService(load_promo_codes())
