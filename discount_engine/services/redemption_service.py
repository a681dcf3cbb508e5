# discount_engine/services/redemption_service.py
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple
from .code_store import CodeStore
from .ledger import RedemptionLedger
from .validator import CodeValidator
from ..models.base import as_utc, utcnow
from ..models.discount import DiscountCode
from ..models.redemption import (
    FinalizeResult, IneligibleReason, LedgerStatus, RedemptionOutcome,
    RedemptionStatus, Reservation, ReserveStatus
)

_INELIGIBLE_STATUS = {
    IneligibleReason.EXPIRED: RedemptionStatus.EXPIRED,
    IneligibleReason.INACTIVE: RedemptionStatus.INACTIVE,
    IneligibleReason.EXHAUSTED: RedemptionStatus.EXHAUSTED,
}

class RedemptionService:
    """Checkout entry point: validate, reserve, then commit or release.

    Payment capture happens between ``attempt_redeem`` and
    ``finalize_redeem``, outside any lock held by the ledger.
    """

    def __init__(self, store: CodeStore, ledger: RedemptionLedger):
        self.store = store
        self.ledger = ledger
        self.validator = CodeValidator()
        self.logger = logging.getLogger(__name__)

    async def _lookup(self, code_text: str, product_id: str, product_price: Decimal,
                      now: datetime) -> Tuple[Optional[DiscountCode], Optional[RedemptionOutcome]]:
        """Find the code and run the advisory checks; returns (code, None) when eligible"""
        code = await self.store.find_code(product_id, code_text or "")
        if code is None:
            return None, RedemptionOutcome(status=RedemptionStatus.NOT_FOUND)

        eligibility = self.validator.check_eligibility(code, now, product_price)
        if not eligibility.eligible:
            self.logger.info(f"Code {code.code} on product {product_id} is {eligibility.reason.value}")
            return code, RedemptionOutcome(status=_INELIGIBLE_STATUS[eligibility.reason])

        return code, None

    async def preview(self, code_text: str, product_id: str, product_price: Decimal,
                      now: Optional[datetime] = None) -> RedemptionOutcome:
        """Price a code without reserving anything"""
        now = as_utc(now) or utcnow()
        product_price = Decimal(product_price)

        code, rejection = await self._lookup(code_text, product_id, product_price, now)
        if rejection:
            return rejection

        discount = self.validator.compute_discount(code, product_price)
        return RedemptionOutcome(
            status=RedemptionStatus.ELIGIBLE,
            discount_amount=discount,
            final_price=product_price - discount
        )

    async def attempt_redeem(self, code_text: str, product_id: str, product_price: Decimal,
                             now: Optional[datetime] = None) -> RedemptionOutcome:
        now = as_utc(now) or utcnow()
        product_price = Decimal(product_price)

        code, rejection = await self._lookup(code_text, product_id, product_price, now)
        if rejection:
            return rejection

        result = await self.ledger.reserve(code.code_id, now)
        if result.status == ReserveStatus.NOT_FOUND:
            return RedemptionOutcome(status=RedemptionStatus.NOT_FOUND)
        if result.status == ReserveStatus.EXHAUSTED:
            # lost the race for the last slot between the check and the reserve
            return RedemptionOutcome(status=RedemptionStatus.EXHAUSTED)

        discount = self.validator.compute_discount(code, product_price)
        return RedemptionOutcome(
            status=RedemptionStatus.RESERVED,
            reservation=result.reservation,
            discount_amount=discount,
            final_price=product_price - discount
        )

    async def finalize_redeem(self, reservation: Reservation, succeeded: bool,
                              now: Optional[datetime] = None) -> FinalizeResult:
        """Call exactly once per reservation after payment succeeds or definitively fails"""
        if not succeeded:
            await self.ledger.release(reservation, now)
            return FinalizeResult.RELEASED

        status = await self.ledger.commit(reservation, now)
        if status == LedgerStatus.EXPIRED_RESERVATION:
            self.logger.warning(
                f"Reservation {reservation.reservation_id} expired before commit; "
                f"the discount no longer applies"
            )
            return FinalizeResult.RESERVATION_EXPIRED
        return FinalizeResult.COMMITTED
