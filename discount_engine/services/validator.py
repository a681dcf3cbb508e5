# discount_engine/services/validator.py
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from ..models.discount import DiscountCode, DiscountType
from ..models.redemption import EligibilityResult, IneligibleReason

CENT = Decimal("0.01")

class CodeValidator:
    """Side-effect free checks and discount arithmetic.

    Eligibility here is advisory: two buyers may both see the last slot as
    available. The ledger makes the binding decision.
    """

    @staticmethod
    def check_eligibility(code: DiscountCode, now: datetime,
                          product_price: Optional[Decimal] = None) -> EligibilityResult:
        if product_price is not None and Decimal(product_price) < 0:
            raise ValueError("Product price cannot be negative")

        if code.is_expired(now):
            return EligibilityResult(reason=IneligibleReason.EXPIRED)

        if not code.is_active:
            return EligibilityResult(reason=IneligibleReason.INACTIVE)

        if code.max_uses is not None and code.current_uses + code.reserved_uses >= code.max_uses:
            return EligibilityResult(reason=IneligibleReason.EXHAUSTED)

        return EligibilityResult()

    @staticmethod
    def compute_discount(code: DiscountCode, price: Decimal) -> Decimal:
        """Amount taken off ``price``, always within [0, price]"""
        price = Decimal(price)
        if price < 0:
            raise ValueError("Product price cannot be negative")

        if code.discount_type == DiscountType.PERCENTAGE:
            amount = (price * code.discount_value / 100).quantize(CENT, rounding=ROUND_HALF_UP)
        elif code.discount_type == DiscountType.FIXED:
            amount = code.discount_value
        else:
            raise ValueError(f"Unsupported discount type: {code.discount_type}")

        return min(max(amount, Decimal(0)), price)

    @classmethod
    def final_price(cls, code: DiscountCode, price: Decimal) -> Decimal:
        return Decimal(price) - cls.compute_discount(code, price)
