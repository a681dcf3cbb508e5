# discount_engine/models/discount.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import field_validator
from .base import TimeStampedModel, as_utc

class DiscountType(str, Enum):
    """Kinds of discount a code can grant"""
    PERCENTAGE = "percentage"  # percent of the item price
    FIXED = "fixed"  # flat amount off the item price

class DiscountCode(TimeStampedModel):
    """Promotional code for a single product, with its usage counters"""
    code_id: UUID
    product_id: str
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    max_uses: Optional[int] = None  # None means unlimited
    current_uses: int = 0  # committed redemptions
    reserved_uses: int = 0  # in-flight reservations
    expires_at: Optional[datetime] = None
    is_active: bool = True
    created_by: str

    @field_validator("expires_at")
    @classmethod
    def _normalize_expiry(cls, value):
        return as_utc(value)

    @property
    def remaining_uses(self) -> Optional[int]:
        if self.max_uses is None:
            return None
        return max(self.max_uses - self.current_uses - self.reserved_uses, 0)

    @property
    def is_maxed_out(self) -> bool:
        return self.max_uses is not None and self.current_uses >= self.max_uses

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and as_utc(now) >= self.expires_at
