# discount_engine/services/postgres_store.py
import asyncio
import logging
import asyncpg
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from .code_store import CodeStore
from ..exceptions import ValidationError
from ..models.discount import DiscountCode
from ..models.redemption import Reservation, ReservationStatus, ReserveStatus

DELETE_ATTEMPTS = 3
DELETE_RETRY_DELAY = 0.05

class PostgresCodeStore(CodeStore):
    """Code store backed by conditional row updates in PostgreSQL.

    Commit, release and sweep lock the reservation row before the code row.
    Delete has to hold the code row before it can see every reservation, so
    it takes late reservation locks with NOWAIT and retries rather than
    waiting on a commit that waits on it.
    """

    def __init__(self, db):
        self.db = db
        self.logger = logging.getLogger(__name__)

    async def insert_code(self, code: DiscountCode) -> DiscountCode:
        try:
            async with self.db.pool.acquire() as conn:
                row = await conn.fetchrow("""
                    INSERT INTO discount_codes (
                        code_id, product_id, code, discount_type, discount_value,
                        max_uses, current_uses, reserved_uses, expires_at,
                        is_active, created_by, created_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, 0, 0, $7, $8, $9, $10)
                    RETURNING *
                """,
                    code.code_id,
                    code.product_id,
                    code.code,
                    code.discount_type.value,
                    code.discount_value,
                    code.max_uses,
                    code.expires_at,
                    code.is_active,
                    code.created_by,
                    code.created_at
                )
        except asyncpg.UniqueViolationError:
            raise ValidationError("A discount code with this name already exists")
        except asyncpg.ForeignKeyViolationError:
            raise ValidationError("Product not found")
        except asyncpg.CheckViolationError as e:
            self.logger.warning(f"Code {code.code} rejected by the database: {e}")
            raise ValidationError("Discount code values are out of range")
        return DiscountCode.model_validate(dict(row))

    async def get_code(self, code_id: UUID) -> Optional[DiscountCode]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT *
                FROM discount_codes
                WHERE code_id = $1
            """, code_id)
            return DiscountCode.model_validate(dict(row)) if row else None

    async def find_code(self, product_id: str, code_text: str) -> Optional[DiscountCode]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT *
                FROM discount_codes
                WHERE product_id = $1 AND lower(code) = lower($2)
            """, product_id, code_text.strip())
            return DiscountCode.model_validate(dict(row)) if row else None

    async def list_codes(self, product_id: str) -> List[DiscountCode]:
        async with self.db.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT *
                FROM discount_codes
                WHERE product_id = $1
                ORDER BY created_at DESC
            """, product_id)
            return [DiscountCode.model_validate(dict(r)) for r in rows]

    async def toggle_active(self, code_id: UUID) -> Optional[DiscountCode]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE discount_codes
                SET is_active = NOT is_active, updated_at = NOW()
                WHERE code_id = $1
                RETURNING *
            """, code_id)
            return DiscountCode.model_validate(dict(row)) if row else None

    async def delete_code(self, code_id: UUID) -> bool:
        for attempt in range(1, DELETE_ATTEMPTS + 1):
            try:
                return await self._delete_code(code_id)
            except asyncpg.LockNotAvailableError:
                if attempt == DELETE_ATTEMPTS:
                    self.logger.error(f"Delete of code {code_id} gave up on locked reservations")
                    raise
                self.logger.info(f"Delete of code {code_id} met a reservation being settled, retrying")
                await asyncio.sleep(DELETE_RETRY_DELAY * attempt)

    async def _delete_code(self, code_id: UUID) -> bool:
        """One delete attempt; LockNotAvailableError means try again.

        Reservations taken after the first pass may belong to a commit that
        already waits on the code row held here, so they are locked NOWAIT.
        """
        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                await conn.fetch("""
                    SELECT reservation_id
                    FROM discount_reservations
                    WHERE code_id = $1 AND status = 'pending'
                    FOR UPDATE
                """, code_id)

                # blocks new reservations on this code
                found = await conn.fetchval("""
                    SELECT code_id
                    FROM discount_codes
                    WHERE code_id = $1
                    FOR UPDATE
                """, code_id)
                if found is None:
                    return False

                pending = await conn.fetch("""
                    SELECT reservation_id
                    FROM discount_reservations
                    WHERE code_id = $1 AND status = 'pending'
                    FOR UPDATE NOWAIT
                """, code_id)

                # reservations go with the code through ON DELETE CASCADE
                await conn.execute("""
                    DELETE FROM discount_codes
                    WHERE code_id = $1
                """, code_id)

        if pending:
            self.logger.info(f"Released {len(pending)} pending reservations of deleted code {code_id}")
        return True

    async def try_reserve(self, reservation: Reservation) -> ReserveStatus:
        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                reserved = await conn.fetchval("""
                    UPDATE discount_codes
                    SET reserved_uses = reserved_uses + 1
                    WHERE code_id = $1
                    AND (max_uses IS NULL OR current_uses + reserved_uses < max_uses)
                    RETURNING code_id
                """, reservation.code_id)

                if reserved is None:
                    exists = await conn.fetchval("""
                        SELECT COUNT(*) FROM discount_codes WHERE code_id = $1
                    """, reservation.code_id)
                    return ReserveStatus.EXHAUSTED if exists else ReserveStatus.NOT_FOUND

                await conn.execute("""
                    INSERT INTO discount_reservations (
                        reservation_id, code_id, status, created_at, expires_at
                    ) VALUES ($1, $2, $3, $4, $5)
                """,
                    reservation.reservation_id,
                    reservation.code_id,
                    ReservationStatus.PENDING.value,
                    reservation.created_at,
                    reservation.expires_at
                )
                return ReserveStatus.RESERVED

    async def _resolve(self, conn, reservation_id: UUID, code_id: UUID,
                       status: ReservationStatus, now: datetime):
        """Close a pending reservation row the caller has locked"""
        await conn.execute("""
            UPDATE discount_reservations
            SET status = $2, resolved_at = $3
            WHERE reservation_id = $1
        """, reservation_id, status.value, now)

        committed = 1 if status == ReservationStatus.COMMITTED else 0
        await conn.execute("""
            UPDATE discount_codes
            SET reserved_uses = reserved_uses - 1,
                current_uses = current_uses + $2
            WHERE code_id = $1
        """, code_id, committed)

    async def _lock_reservation(self, conn, reservation_id: UUID):
        return await conn.fetchrow("""
            SELECT code_id, status, expires_at
            FROM discount_reservations
            WHERE reservation_id = $1
            FOR UPDATE
        """, reservation_id)

    async def commit_reservation(self, reservation_id: UUID,
                                 now: datetime) -> Optional[ReservationStatus]:
        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                row = await self._lock_reservation(conn, reservation_id)
                if row is None:
                    return None

                status = ReservationStatus(row['status'])
                if status != ReservationStatus.PENDING:
                    return status

                if now >= row['expires_at']:
                    status = ReservationStatus.RELEASED
                else:
                    status = ReservationStatus.COMMITTED
                await self._resolve(conn, reservation_id, row['code_id'], status, now)
                return status

    async def release_reservation(self, reservation_id: UUID,
                                  now: datetime) -> Optional[ReservationStatus]:
        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                row = await self._lock_reservation(conn, reservation_id)
                if row is None:
                    return None

                status = ReservationStatus(row['status'])
                if status != ReservationStatus.PENDING:
                    return status

                await self._resolve(conn, reservation_id, row['code_id'],
                                    ReservationStatus.RELEASED, now)
                return ReservationStatus.RELEASED

    async def release_expired(self, now: datetime, code_id: Optional[UUID] = None) -> int:
        query = """
            UPDATE discount_reservations
            SET status = 'released', resolved_at = $1
            WHERE reservation_id IN (
                SELECT reservation_id
                FROM discount_reservations
                WHERE status = 'pending' AND expires_at <= $1
                {code_filter}
                FOR UPDATE SKIP LOCKED
            )
            RETURNING code_id
        """
        params = [now]
        if code_id is not None:
            query = query.format(code_filter="AND code_id = $2")
            params.append(code_id)
        else:
            query = query.format(code_filter="")

        async with self.db.pool.acquire() as conn:
            async with conn.transaction():
                rows = await conn.fetch(query, *params)
                if not rows:
                    return 0

                per_code = {}
                for row in rows:
                    per_code[row['code_id']] = per_code.get(row['code_id'], 0) + 1

                # fixed order keeps concurrent sweeps from deadlocking on code rows
                for cid in sorted(per_code):
                    await conn.execute("""
                        UPDATE discount_codes
                        SET reserved_uses = reserved_uses - $2
                        WHERE code_id = $1
                    """, cid, per_code[cid])

                return len(rows)

    async def get_reservation(self, reservation_id: UUID) -> Optional[Reservation]:
        async with self.db.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT reservation_id, code_id, status, created_at, expires_at
                FROM discount_reservations
                WHERE reservation_id = $1
            """, reservation_id)
            return Reservation.model_validate(dict(row)) if row else None
