# discount_engine/services/code_store.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from ..models.discount import DiscountCode
from ..models.redemption import Reservation, ReservationStatus, ReserveStatus

class CodeStore:
    """Storage for discount codes and their reservations.

    Implementations own the atomicity of every counter change: each method
    that touches ``current_uses`` or ``reserved_uses`` must be a single atomic
    step with respect to all other calls on the same code, and must never
    serialize calls on different codes. Returned models are copies.
    """

    async def insert_code(self, code: DiscountCode) -> DiscountCode:
        """Persist a new code; raises ValidationError when the text is taken"""
        raise NotImplementedError

    async def get_code(self, code_id: UUID) -> Optional[DiscountCode]:
        raise NotImplementedError

    async def find_code(self, product_id: str, code_text: str) -> Optional[DiscountCode]:
        """Case-insensitive lookup within a product"""
        raise NotImplementedError

    async def list_codes(self, product_id: str) -> List[DiscountCode]:
        """All codes of a product, newest first"""
        raise NotImplementedError

    async def toggle_active(self, code_id: UUID) -> Optional[DiscountCode]:
        """Flip ``is_active``; None when the code does not exist"""
        raise NotImplementedError

    async def delete_code(self, code_id: UUID) -> bool:
        """Remove the code and release its pending reservations in one step"""
        raise NotImplementedError

    async def try_reserve(self, reservation: Reservation) -> ReserveStatus:
        """Take one unit of capacity for ``reservation`` if the cap allows it"""
        raise NotImplementedError

    async def commit_reservation(self, reservation_id: UUID,
                                 now: datetime) -> Optional[ReservationStatus]:
        """Move a pending unit to ``current_uses``.

        A pending reservation past its TTL is released instead. Returns the
        reservation's status after the call, or None if it is unknown.
        """
        raise NotImplementedError

    async def release_reservation(self, reservation_id: UUID,
                                  now: datetime) -> Optional[ReservationStatus]:
        """Return a pending unit to the pool; terminal reservations are left as is"""
        raise NotImplementedError

    async def release_expired(self, now: datetime, code_id: Optional[UUID] = None) -> int:
        """Release pending reservations past their TTL, optionally for one code"""
        raise NotImplementedError

    async def get_reservation(self, reservation_id: UUID) -> Optional[Reservation]:
        raise NotImplementedError
