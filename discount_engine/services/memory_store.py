# discount_engine/services/memory_store.py
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple
from uuid import UUID
from .code_store import CodeStore
from ..exceptions import ValidationError
from ..models.discount import DiscountCode
from ..models.redemption import Reservation, ReservationStatus, ReserveStatus

class MemoryCodeStore(CodeStore):
    """In-process store with one mutex per code.

    Critical sections never await, so the per-code ``threading.Lock`` is safe
    both for coroutines on one event loop and for callers on several threads.
    """

    def __init__(self):
        self._codes: Dict[UUID, DiscountCode] = {}
        self._index: Dict[Tuple[str, str], UUID] = {}
        self._reservations: Dict[UUID, Reservation] = {}
        self._pending: Dict[UUID, Set[UUID]] = {}
        # committed or released, kept until their own TTL passes
        self._settled: Dict[UUID, Set[UUID]] = {}
        self._locks: Dict[UUID, threading.Lock] = {}
        # guards the (product, code text) index only, never a redemption
        self._index_lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def _lock_for(self, code_id: UUID) -> threading.Lock:
        # unknown or deleted codes get a throwaway lock, there is nothing to guard
        lock = self._locks.get(code_id)
        return lock if lock is not None else threading.Lock()

    @staticmethod
    def _key(product_id: str, code_text: str) -> Tuple[str, str]:
        return product_id, code_text.strip().lower()

    async def insert_code(self, code: DiscountCode) -> DiscountCode:
        key = self._key(code.product_id, code.code)
        with self._index_lock:
            if key in self._index:
                raise ValidationError("A discount code with this name already exists")
            stored = code.model_copy()
            self._locks[stored.code_id] = threading.Lock()
            self._pending[stored.code_id] = set()
            self._settled[stored.code_id] = set()
            self._codes[stored.code_id] = stored
            self._index[key] = stored.code_id
        return stored.model_copy()

    async def get_code(self, code_id: UUID) -> Optional[DiscountCode]:
        with self._lock_for(code_id):
            code = self._codes.get(code_id)
            return code.model_copy() if code else None

    async def find_code(self, product_id: str, code_text: str) -> Optional[DiscountCode]:
        code_id = self._index.get(self._key(product_id, code_text))
        if code_id is None:
            return None
        return await self.get_code(code_id)

    async def list_codes(self, product_id: str) -> List[DiscountCode]:
        codes = [c.model_copy() for c in list(self._codes.values()) if c.product_id == product_id]
        return sorted(codes, key=lambda c: c.created_at, reverse=True)

    async def toggle_active(self, code_id: UUID) -> Optional[DiscountCode]:
        with self._lock_for(code_id):
            code = self._codes.get(code_id)
            if code is None:
                return None
            code.is_active = not code.is_active
            return code.model_copy()

    async def delete_code(self, code_id: UUID) -> bool:
        with self._lock_for(code_id):
            code = self._codes.pop(code_id, None)
            if code is None:
                return False
            pending = self._pending.pop(code_id, set())
            settled = self._settled.pop(code_id, set())
            # reservations go with the code, so a late commit finds nothing
            for reservation_id in pending | settled:
                reservation = self._reservations.pop(reservation_id)
                if reservation_id in pending:
                    reservation.status = ReservationStatus.RELEASED
            with self._index_lock:
                self._index.pop(self._key(code.product_id, code.code), None)
            self._locks.pop(code_id, None)

        if pending:
            self.logger.info(f"Released {len(pending)} pending reservations of deleted code {code_id}")
        return True

    async def try_reserve(self, reservation: Reservation) -> ReserveStatus:
        with self._lock_for(reservation.code_id):
            code = self._codes.get(reservation.code_id)
            if code is None:
                return ReserveStatus.NOT_FOUND
            if code.max_uses is not None and code.current_uses + code.reserved_uses >= code.max_uses:
                return ReserveStatus.EXHAUSTED
            code.reserved_uses += 1
            self._reservations[reservation.reservation_id] = reservation.model_copy()
            self._pending[code.code_id].add(reservation.reservation_id)
            return ReserveStatus.RESERVED

    def _resolve(self, reservation: Reservation, status: ReservationStatus):
        """Close a pending reservation; caller holds the code lock"""
        code = self._codes[reservation.code_id]
        code.reserved_uses -= 1
        if status == ReservationStatus.COMMITTED:
            code.current_uses += 1
        reservation.status = status
        self._pending[reservation.code_id].discard(reservation.reservation_id)
        self._settled[reservation.code_id].add(reservation.reservation_id)

    async def commit_reservation(self, reservation_id: UUID,
                                 now: datetime) -> Optional[ReservationStatus]:
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            return None
        with self._lock_for(reservation.code_id):
            if reservation.status != ReservationStatus.PENDING:
                return reservation.status
            if reservation.is_expired(now):
                self._resolve(reservation, ReservationStatus.RELEASED)
            else:
                self._resolve(reservation, ReservationStatus.COMMITTED)
            return reservation.status

    async def release_reservation(self, reservation_id: UUID,
                                  now: datetime) -> Optional[ReservationStatus]:
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            return None
        with self._lock_for(reservation.code_id):
            if reservation.status == ReservationStatus.PENDING:
                self._resolve(reservation, ReservationStatus.RELEASED)
            return reservation.status

    async def release_expired(self, now: datetime, code_id: Optional[UUID] = None) -> int:
        """Release pending reservations past their TTL and forget settled ones.

        A settled reservation is dropped once its TTL has passed. A late commit
        or release of it then finds nothing, which the ledger reports as an
        expired reservation or a no-op release.
        """
        code_ids = [code_id] if code_id is not None else list(self._pending.keys())
        released = 0
        for cid in code_ids:
            with self._lock_for(cid):
                if cid not in self._codes:
                    continue
                settled = self._settled[cid]
                for reservation_id in list(settled):
                    if self._reservations[reservation_id].is_expired(now):
                        settled.discard(reservation_id)
                        del self._reservations[reservation_id]

                for reservation_id in list(self._pending[cid]):
                    reservation = self._reservations[reservation_id]
                    if reservation.is_expired(now):
                        self._resolve(reservation, ReservationStatus.RELEASED)
                        released += 1
        return released

    async def get_reservation(self, reservation_id: UUID) -> Optional[Reservation]:
        reservation = self._reservations.get(reservation_id)
        return reservation.model_copy() if reservation else None
