# discount_engine/services/ledger.py
import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID, uuid4
from .code_store import CodeStore
from ..config import Config
from ..models.base import as_utc, utcnow
from ..models.redemption import (
    LedgerStatus, Reservation, ReservationStatus, ReserveResult, ReserveStatus
)

class RedemptionLedger:
    """Bounded usage counter per code: reserve, then commit or release.

    ``current_uses + reserved_uses`` never exceeds ``max_uses``. Every
    reservation ends committed, released, or reclaimed once its TTL passes.
    """

    def __init__(self, store: CodeStore, reservation_ttl: Optional[timedelta] = None):
        self.store = store
        self.reservation_ttl = reservation_ttl or timedelta(seconds=Config.RESERVATION_TTL_SECONDS)
        self.logger = logging.getLogger(__name__)

    async def reserve(self, code_id: UUID, now: Optional[datetime] = None) -> ReserveResult:
        now = as_utc(now) or utcnow()

        # reclaim abandoned slots of this code before judging capacity
        try:
            reclaimed = await self.store.release_expired(now, code_id=code_id)
            if reclaimed:
                self.logger.info(f"Reclaimed {reclaimed} expired reservations of code {code_id}")
        except Exception as e:
            self.logger.warning(f"Lazy sweep of code {code_id} failed: {e}", exc_info=True)

        reservation = Reservation(
            reservation_id=uuid4(),
            code_id=code_id,
            created_at=now,
            expires_at=now + self.reservation_ttl
        )
        status = await self.store.try_reserve(reservation)

        if status != ReserveStatus.RESERVED:
            self.logger.info(f"Reservation on code {code_id} rejected: {status.value}")
            return ReserveResult(status=status)

        self.logger.debug(f"Reserved {reservation.reservation_id} on code {code_id}")
        return ReserveResult(status=status, reservation=reservation)

    async def commit(self, reservation: Reservation, now: Optional[datetime] = None) -> LedgerStatus:
        now = as_utc(now) or utcnow()
        status = await self.store.commit_reservation(reservation.reservation_id, now)

        if status == ReservationStatus.COMMITTED:
            self.logger.debug(f"Committed {reservation.reservation_id} on code {reservation.code_id}")
            return LedgerStatus.OK

        self.logger.info(
            f"Commit of {reservation.reservation_id} refused, reservation is "
            f"{status.value if status else 'gone'}"
        )
        return LedgerStatus.EXPIRED_RESERVATION

    async def release(self, reservation: Reservation, now: Optional[datetime] = None) -> LedgerStatus:
        now = as_utc(now) or utcnow()
        status = await self.store.release_reservation(reservation.reservation_id, now)
        self.logger.debug(
            f"Release of {reservation.reservation_id}: {status.value if status else 'gone'}"
        )
        return LedgerStatus.OK

    async def sweep_expired_reservations(self, now: Optional[datetime] = None) -> int:
        now = as_utc(now) or utcnow()
        released = await self.store.release_expired(now)
        if released:
            self.logger.info(f"Sweep released {released} expired reservations")
        return released
