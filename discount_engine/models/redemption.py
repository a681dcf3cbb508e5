# discount_engine/models/redemption.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, field_validator
from .base import as_utc

class ReservationStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    RELEASED = "released"

class Reservation(BaseModel):
    """Claim on one use of a code, held while the buyer pays"""
    reservation_id: UUID
    code_id: UUID
    created_at: datetime
    expires_at: datetime
    status: ReservationStatus = ReservationStatus.PENDING

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at", "expires_at")
    @classmethod
    def _normalize(cls, value):
        return as_utc(value)

    def is_expired(self, now: datetime) -> bool:
        return as_utc(now) >= self.expires_at

class IneligibleReason(str, Enum):
    EXPIRED = "expired"
    INACTIVE = "inactive"
    EXHAUSTED = "exhausted"

class EligibilityResult(BaseModel):
    reason: Optional[IneligibleReason] = None

    @property
    def eligible(self) -> bool:
        return self.reason is None

class ReserveStatus(str, Enum):
    RESERVED = "reserved"
    EXHAUSTED = "exhausted"
    NOT_FOUND = "not_found"

class ReserveResult(BaseModel):
    status: ReserveStatus
    reservation: Optional[Reservation] = None

class LedgerStatus(str, Enum):
    OK = "ok"
    EXPIRED_RESERVATION = "expired_reservation"

class RedemptionStatus(str, Enum):
    """What the checkout flow is told about a presented code"""
    RESERVED = "reserved"
    ELIGIBLE = "eligible"  # price preview only, nothing reserved
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    EXHAUSTED = "exhausted"

class RedemptionOutcome(BaseModel):
    status: RedemptionStatus
    reservation: Optional[Reservation] = None
    discount_amount: Optional[Decimal] = None
    final_price: Optional[Decimal] = None

    @property
    def reserved(self) -> bool:
        return self.status == RedemptionStatus.RESERVED

class FinalizeResult(str, Enum):
    COMMITTED = "committed"
    RELEASED = "released"
    RESERVATION_EXPIRED = "reservation_expired"

class LifecycleResult(str, Enum):
    OK = "ok"
    NOT_OWNER = "not_owner"
    NOT_FOUND = "not_found"
