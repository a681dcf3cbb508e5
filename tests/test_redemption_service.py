import asyncio
from datetime import timedelta
from decimal import Decimal

from discount_engine.models.discount import DiscountType
from discount_engine.models.redemption import FinalizeResult, RedemptionStatus

from conftest import PRICE, PRODUCT, SELLER


async def test_reserved_outcome_carries_discount(make_code, redemption_service, now):
    await make_code(code="SAVE10", value=10)

    outcome = await redemption_service.attempt_redeem("SAVE10", PRODUCT, PRICE, now)

    assert outcome.status == RedemptionStatus.RESERVED
    assert outcome.reserved
    assert outcome.discount_amount == Decimal("4.00")
    assert outcome.final_price == Decimal("36.00")
    assert outcome.reservation is not None


async def test_lookup_is_case_insensitive(make_code, redemption_service, now):
    await make_code(code="Summer24")
    outcome = await redemption_service.attempt_redeem("  summer24 ", PRODUCT, PRICE, now)
    assert outcome.status == RedemptionStatus.RESERVED


async def test_unknown_code(make_code, redemption_service, now):
    await make_code(code="SAVE10")
    assert (await redemption_service.attempt_redeem("NOPE", PRODUCT, PRICE, now)).status == RedemptionStatus.NOT_FOUND
    # codes are scoped to their product
    assert (await redemption_service.attempt_redeem("SAVE10", "prod-2", PRICE, now)).status == RedemptionStatus.NOT_FOUND


async def test_expired_code_regardless_of_state(make_code, redemption_service, now):
    await make_code(code="OLD", max_uses=5, expires_at=now + timedelta(hours=1))

    later = now + timedelta(hours=1, seconds=1)
    outcome = await redemption_service.attempt_redeem("OLD", PRODUCT, PRICE, later)
    assert outcome.status == RedemptionStatus.EXPIRED
    assert outcome.reservation is None


async def test_inactive_code(make_code, redemption_service, discount_service, now):
    code = await make_code(code="PAUSED")
    await discount_service.toggle_active(code.code_id, SELLER)

    outcome = await redemption_service.attempt_redeem("PAUSED", PRODUCT, PRICE, now)
    assert outcome.status == RedemptionStatus.INACTIVE


async def test_exhausted_code(make_code, redemption_service, now):
    await make_code(code="ONCE", max_uses=1)
    first = await redemption_service.attempt_redeem("ONCE", PRODUCT, PRICE, now)
    await redemption_service.finalize_redeem(first.reservation, True, now)

    outcome = await redemption_service.attempt_redeem("ONCE", PRODUCT, PRICE, now)
    assert outcome.status == RedemptionStatus.EXHAUSTED


async def test_race_for_single_use_code(make_code, redemption_service, store, now):
    code = await make_code(code="SAVE1", max_uses=1)

    outcomes = await asyncio.gather(*(
        redemption_service.attempt_redeem("SAVE1", PRODUCT, PRICE, now) for _ in range(50)
    ))

    winners = [o for o in outcomes if o.status == RedemptionStatus.RESERVED]
    assert len(winners) == 1
    assert all(o.status == RedemptionStatus.EXHAUSTED for o in outcomes if o not in winners)

    for winner in winners:
        assert await redemption_service.finalize_redeem(winner.reservation, True, now) == FinalizeResult.COMMITTED

    stored = await store.get_code(code.code_id)
    assert stored.current_uses == 1
    assert stored.reserved_uses == 0


async def test_failed_checkout_returns_slot(make_code, redemption_service, store, now):
    code = await make_code(code="ONCE", max_uses=1)
    first = await redemption_service.attempt_redeem("ONCE", PRODUCT, PRICE, now)

    assert await redemption_service.finalize_redeem(first.reservation, False, now) == FinalizeResult.RELEASED

    second = await redemption_service.attempt_redeem("ONCE", PRODUCT, PRICE, now)
    assert second.status == RedemptionStatus.RESERVED
    assert (await store.get_code(code.code_id)).current_uses == 0


async def test_slow_checkout_must_redeem_again(make_code, redemption_service, store, now):
    code = await make_code(code="ONCE", max_uses=1)
    outcome = await redemption_service.attempt_redeem("ONCE", PRODUCT, PRICE, now)

    late = now + timedelta(minutes=30)
    result = await redemption_service.finalize_redeem(outcome.reservation, True, late)
    assert result == FinalizeResult.RESERVATION_EXPIRED
    assert (await store.get_code(code.code_id)).current_uses == 0

    retry = await redemption_service.attempt_redeem("ONCE", PRODUCT, PRICE, late)
    assert retry.status == RedemptionStatus.RESERVED


async def test_fixed_discount_uses_current_price(make_code, redemption_service, now):
    await make_code(code="FIVE", discount_type=DiscountType.FIXED, value="30.00")

    outcome = await redemption_service.attempt_redeem("FIVE", PRODUCT, Decimal("25.00"), now)
    assert outcome.discount_amount == Decimal("25.00")
    assert outcome.final_price == Decimal("0.00")


async def test_preview_does_not_reserve(make_code, redemption_service, store, now):
    code = await make_code(code="LOOK", max_uses=1)

    outcome = await redemption_service.preview("look", PRODUCT, PRICE, now)
    assert outcome.status == RedemptionStatus.ELIGIBLE
    assert outcome.reservation is None
    assert outcome.discount_amount == Decimal("4.00")
    assert (await store.get_code(code.code_id)).reserved_uses == 0
