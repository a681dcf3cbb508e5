import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from uuid import uuid4

from discount_engine.models.redemption import (
    LedgerStatus, Reservation, ReservationStatus, ReserveStatus
)


async def test_reserve_counts_against_cap(make_code, ledger, store, now):
    code = await make_code(max_uses=2)

    first = await ledger.reserve(code.code_id, now)
    second = await ledger.reserve(code.code_id, now)
    third = await ledger.reserve(code.code_id, now)

    assert first.status == ReserveStatus.RESERVED
    assert second.status == ReserveStatus.RESERVED
    assert third.status == ReserveStatus.EXHAUSTED
    assert third.reservation is None

    stored = await store.get_code(code.code_id)
    assert stored.reserved_uses == 2
    assert stored.current_uses == 0


async def test_reservation_carries_ttl(make_code, ledger, now):
    code = await make_code()
    result = await ledger.reserve(code.code_id, now)
    assert result.reservation.code_id == code.code_id
    assert result.reservation.expires_at == now + timedelta(minutes=15)


async def test_reserve_unknown_code(ledger, now):
    result = await ledger.reserve(uuid4(), now)
    assert result.status == ReserveStatus.NOT_FOUND


async def test_unlimited_code_always_reserves(make_code, ledger, store, now):
    code = await make_code(max_uses=None)
    for _ in range(100):
        assert (await ledger.reserve(code.code_id, now)).status == ReserveStatus.RESERVED
    assert (await store.get_code(code.code_id)).reserved_uses == 100


async def test_commit_moves_unit_to_current_uses(make_code, ledger, store, now):
    code = await make_code(max_uses=1)
    reservation = (await ledger.reserve(code.code_id, now)).reservation

    assert await ledger.commit(reservation, now) == LedgerStatus.OK

    stored = await store.get_code(code.code_id)
    assert stored.current_uses == 1
    assert stored.reserved_uses == 0
    assert (await store.get_reservation(reservation.reservation_id)).status == ReservationStatus.COMMITTED


async def test_commit_is_idempotent(make_code, ledger, store, now):
    code = await make_code(max_uses=5)
    reservation = (await ledger.reserve(code.code_id, now)).reservation

    assert await ledger.commit(reservation, now) == LedgerStatus.OK
    assert await ledger.commit(reservation, now) == LedgerStatus.OK

    stored = await store.get_code(code.code_id)
    assert stored.current_uses == 1
    assert stored.reserved_uses == 0


async def test_release_is_idempotent(make_code, ledger, store, now):
    code = await make_code(max_uses=5)
    reservation = (await ledger.reserve(code.code_id, now)).reservation

    assert await ledger.release(reservation, now) == LedgerStatus.OK
    assert await ledger.release(reservation, now) == LedgerStatus.OK

    stored = await store.get_code(code.code_id)
    assert stored.current_uses == 0
    assert stored.reserved_uses == 0


async def test_release_after_commit_is_noop(make_code, ledger, store, now):
    code = await make_code(max_uses=5)
    reservation = (await ledger.reserve(code.code_id, now)).reservation
    await ledger.commit(reservation, now)

    assert await ledger.release(reservation, now) == LedgerStatus.OK

    stored = await store.get_code(code.code_id)
    assert stored.current_uses == 1
    assert stored.reserved_uses == 0


async def test_commit_after_release_is_rejected(make_code, ledger, store, now):
    code = await make_code(max_uses=5)
    reservation = (await ledger.reserve(code.code_id, now)).reservation
    await ledger.release(reservation, now)

    assert await ledger.commit(reservation, now) == LedgerStatus.EXPIRED_RESERVATION
    assert (await store.get_code(code.code_id)).current_uses == 0


async def test_commit_past_ttl_is_rejected_and_frees_slot(make_code, ledger, store, now):
    code = await make_code(max_uses=1)
    reservation = (await ledger.reserve(code.code_id, now)).reservation

    late = now + timedelta(minutes=16)
    assert await ledger.commit(reservation, late) == LedgerStatus.EXPIRED_RESERVATION

    stored = await store.get_code(code.code_id)
    assert stored.current_uses == 0
    assert stored.reserved_uses == 0
    assert (await ledger.reserve(code.code_id, late)).status == ReserveStatus.RESERVED


async def test_commit_unknown_reservation(ledger, now):
    reservation = Reservation(
        reservation_id=uuid4(), code_id=uuid4(),
        created_at=now, expires_at=now + timedelta(minutes=1)
    )
    assert await ledger.commit(reservation, now) == LedgerStatus.EXPIRED_RESERVATION
    assert await ledger.release(reservation, now) == LedgerStatus.OK


async def test_sweep_recovers_abandoned_slot(make_code, ledger, store, now):
    code = await make_code(max_uses=1)
    abandoned = (await ledger.reserve(code.code_id, now)).reservation
    assert (await ledger.reserve(code.code_id, now)).status == ReserveStatus.EXHAUSTED

    later = now + timedelta(minutes=20)
    assert await ledger.sweep_expired_reservations(later) == 1

    assert (await store.get_reservation(abandoned.reservation_id)).status == ReservationStatus.RELEASED
    assert (await store.get_code(code.code_id)).reserved_uses == 0
    assert (await ledger.reserve(code.code_id, later)).status == ReserveStatus.RESERVED


async def test_sweep_leaves_live_reservations(make_code, ledger, store, now):
    code = await make_code(max_uses=3)
    await ledger.reserve(code.code_id, now)
    await ledger.reserve(code.code_id, now + timedelta(minutes=10))

    assert await ledger.sweep_expired_reservations(now + timedelta(minutes=16)) == 1
    assert (await store.get_code(code.code_id)).reserved_uses == 1


async def test_reserve_reclaims_expired_slots_lazily(make_code, ledger, now):
    code = await make_code(max_uses=1)
    await ledger.reserve(code.code_id, now)

    result = await ledger.reserve(code.code_id, now + timedelta(minutes=15))
    assert result.status == ReserveStatus.RESERVED


async def test_delete_releases_pending_reservations(make_code, ledger, store, discount_service, now):
    code = await make_code(max_uses=2)
    reservation = (await ledger.reserve(code.code_id, now)).reservation

    await discount_service.delete_code(code.code_id, "seller-1")

    assert await store.get_reservation(reservation.reservation_id) is None
    assert await ledger.commit(reservation, now) == LedgerStatus.EXPIRED_RESERVATION
    assert (await ledger.reserve(code.code_id, now)).status == ReserveStatus.NOT_FOUND


async def test_codes_do_not_share_capacity(make_code, ledger, now):
    capped = await make_code(code="ONE", max_uses=1)
    other = await make_code(code="TWO", max_uses=1)

    await ledger.reserve(capped.code_id, now)
    assert (await ledger.reserve(capped.code_id, now)).status == ReserveStatus.EXHAUSTED
    assert (await ledger.reserve(other.code_id, now)).status == ReserveStatus.RESERVED


async def test_concurrent_reserve_commit_release_respects_cap(make_code, ledger, store, now):
    code = await make_code(max_uses=10)

    async def checkout(i):
        result = await ledger.reserve(code.code_id, now)
        if result.status != ReserveStatus.RESERVED:
            return False
        await asyncio.sleep(0)
        snapshot = await store.get_code(code.code_id)
        assert snapshot.current_uses + snapshot.reserved_uses <= 10
        if i % 3 == 0:
            await ledger.release(result.reservation, now)
            return False
        await ledger.commit(result.reservation, now)
        return True

    committed = await asyncio.gather(*(checkout(i) for i in range(200)))

    stored = await store.get_code(code.code_id)
    assert stored.current_uses == sum(committed)
    assert stored.current_uses <= 10
    assert stored.reserved_uses == 0


def test_threaded_reserve_never_exceeds_cap(store, ledger, make_code, now):
    code = asyncio.run(make_code(max_uses=7))

    def attempt(_):
        return asyncio.run(ledger.reserve(code.code_id, now)).status

    with ThreadPoolExecutor(max_workers=16) as pool:
        statuses = list(pool.map(attempt, range(100)))

    assert statuses.count(ReserveStatus.RESERVED) == 7
    assert statuses.count(ReserveStatus.EXHAUSTED) == 93
    stored = asyncio.run(store.get_code(code.code_id))
    assert stored.reserved_uses == 7
