# discount_engine/services/product_service.py
from typing import Dict, Optional, Any
from decimal import Decimal

# subscription tiers that unlock discount codes for sellers
DISCOUNT_TIERS = ("premium", "ultimate")

class ProductService:
    """Read-only view of the marketplace catalog and seller accounts"""

    def __init__(self, db):
        self.db = db

    async def get_product(self, product_id: str) -> Optional[Dict[str, Any]]:
        async with self.db.pool.acquire() as conn:
            product = await conn.fetchrow("""
                SELECT product_id, seller_id, title, price
                FROM products
                WHERE product_id = $1
            """, product_id)
            return dict(product) if product else None

    async def get_product_price(self, product_id: str) -> Optional[Decimal]:
        async with self.db.pool.acquire() as conn:
            return await conn.fetchval("""
                SELECT price
                FROM products
                WHERE product_id = $1
            """, product_id)

    async def is_owner(self, user_id: str, product_id: str) -> bool:
        async with self.db.pool.acquire() as conn:
            seller_id = await conn.fetchval("""
                SELECT seller_id
                FROM products
                WHERE product_id = $1
            """, product_id)
            return seller_id is not None and seller_id == str(user_id)

    async def can_manage_discounts(self, user_id: str) -> bool:
        async with self.db.pool.acquire() as conn:
            tier = await conn.fetchval("""
                SELECT tier
                FROM subscriptions
                WHERE user_id = $1
            """, str(user_id))
            return tier in DISCOUNT_TIERS
