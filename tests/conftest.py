from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from discount_engine.models.discount import DiscountType
from discount_engine.services.discount_service import DiscountService
from discount_engine.services.ledger import RedemptionLedger
from discount_engine.services.memory_store import MemoryCodeStore
from discount_engine.services.redemption_service import RedemptionService

SELLER = "seller-1"
OTHER_SELLER = "seller-2"
PRODUCT = "prod-1"
PRICE = Decimal("40.00")


class FakeCatalog:
    def __init__(self, prices):
        self.prices = dict(prices)

    async def get_product_price(self, product_id):
        return self.prices.get(product_id)


class FakeIdentity:
    def __init__(self, owners, subscribers):
        self.owners = dict(owners)
        self.subscribers = set(subscribers)

    async def is_owner(self, user_id, product_id):
        return self.owners.get(product_id) == user_id

    async def can_manage_discounts(self, user_id):
        return user_id in self.subscribers


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return MemoryCodeStore()


@pytest.fixture
def catalog():
    return FakeCatalog({PRODUCT: PRICE, "prod-2": Decimal("10.00")})


@pytest.fixture
def identity():
    return FakeIdentity({PRODUCT: SELLER, "prod-2": OTHER_SELLER}, {SELLER, OTHER_SELLER})


@pytest.fixture
def ledger(store):
    return RedemptionLedger(store, reservation_ttl=timedelta(minutes=15))


@pytest.fixture
def discount_service(store, catalog, identity):
    return DiscountService(store, catalog, identity)


@pytest.fixture
def redemption_service(store, ledger):
    return RedemptionService(store, ledger)


@pytest.fixture
def make_code(discount_service, now):
    async def _make(code="SAVE10", discount_type=DiscountType.PERCENTAGE, value=10,
                    max_uses=None, expires_at=None, product_id=PRODUCT, owner=SELLER):
        return await discount_service.create_code(
            owner_id=owner,
            product_id=product_id,
            code=code,
            discount_type=discount_type,
            discount_value=value,
            max_uses=max_uses,
            expires_at=expires_at,
            now=now
        )
    return _make
