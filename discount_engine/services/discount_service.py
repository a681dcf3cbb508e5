# discount_engine/services/discount_service.py
import logging
import re
import pytz
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union
from uuid import UUID, uuid4
from .code_store import CodeStore
from ..config import Config
from ..exceptions import PermissionDeniedError, ValidationError
from ..models.base import as_utc, utcnow
from ..models.discount import DiscountCode, DiscountType
from ..models.redemption import LifecycleResult

CODE_PATTERN = re.compile(r"[A-Za-z0-9]{1,20}")

class DiscountService:
    """Seller-side management of discount codes.

    ``catalog`` provides ``get_product_price(product_id)``; ``identity``
    provides ``is_owner(user_id, product_id)`` and
    ``can_manage_discounts(user_id)``.
    """

    def __init__(self, store: CodeStore, catalog, identity):
        self.store = store
        self.catalog = catalog
        self.identity = identity
        self.logger = logging.getLogger(__name__)

    async def create_code(self, owner_id: str, product_id: str, code: str,
                          discount_type: Union[DiscountType, str],
                          discount_value: Union[Decimal, int, float, str],
                          max_uses: Optional[int] = None,
                          expires_at: Optional[datetime] = None,
                          product_price: Optional[Decimal] = None,
                          now: Optional[datetime] = None) -> DiscountCode:
        """Validate and store a new code; raises ValidationError on bad input"""
        owner_id = str(owner_id)
        now = as_utc(now) or utcnow()

        if not await self.identity.is_owner(owner_id, product_id):
            raise PermissionDeniedError("You do not have permission to manage this product")
        if not await self.identity.can_manage_discounts(owner_id):
            raise PermissionDeniedError("Discount codes are available for Premium and Ultimate members")

        code = (code or "").strip()
        if not CODE_PATTERN.fullmatch(code):
            raise ValidationError("Discount code must be 1-20 letters and numbers, no spaces")

        if await self.store.find_code(product_id, code):
            raise ValidationError("A discount code with this name already exists")

        discount_type = self._parse_type(discount_type)
        value = self._parse_value(discount_value)

        if product_price is None:
            product_price = await self.catalog.get_product_price(product_id)
            if product_price is None:
                raise ValidationError("Product not found")
        product_price = Decimal(product_price)

        if discount_type == DiscountType.PERCENTAGE:
            if value < 1 or value > 100:
                raise ValidationError("Percentage discount must be between 1% and 100%")
        elif discount_type == DiscountType.FIXED:
            if value <= 0:
                raise ValidationError("Please enter a valid discount value")
            if value > product_price:
                raise ValidationError(
                    f"Fixed discount cannot exceed product price ({product_price:.2f})"
                )

        if max_uses is not None:
            if isinstance(max_uses, bool) or not isinstance(max_uses, int) or max_uses <= 0:
                raise ValidationError("Maximum uses must be a positive whole number")

        if expires_at is not None:
            expires_at = self._localize(expires_at)
            if expires_at <= now:
                raise ValidationError("Expiration date must be in the future")

        new_code = DiscountCode(
            code_id=uuid4(),
            product_id=product_id,
            code=code.upper(),
            discount_type=discount_type,
            discount_value=value,
            max_uses=max_uses,
            expires_at=expires_at,
            is_active=True,
            created_by=owner_id,
            created_at=now
        )
        stored = await self.store.insert_code(new_code)
        self.logger.info(f"Code {stored.code} created for product {product_id} by {owner_id}")
        return stored

    async def get_code(self, code_id: UUID) -> Optional[DiscountCode]:
        return await self.store.get_code(code_id)

    async def list_codes(self, product_id: str, owner_id: str) -> List[DiscountCode]:
        if not await self.identity.is_owner(str(owner_id), product_id):
            raise PermissionDeniedError("You do not have permission to manage this product")
        return await self.store.list_codes(product_id)

    async def toggle_active(self, code_id: UUID, owner_id: str) -> LifecycleResult:
        """Flip the active flag; expiry and cap are not consulted"""
        result = await self._check_owner(code_id, owner_id)
        if result != LifecycleResult.OK:
            return result

        code = await self.store.toggle_active(code_id)
        if code is None:
            return LifecycleResult.NOT_FOUND

        self.logger.info(f"Code {code.code} is now {'active' if code.is_active else 'inactive'}")
        return LifecycleResult.OK

    async def delete_code(self, code_id: UUID, owner_id: str) -> LifecycleResult:
        """Hard delete; pending reservations of the code are released with it"""
        result = await self._check_owner(code_id, owner_id)
        if result != LifecycleResult.OK:
            return result

        if not await self.store.delete_code(code_id):
            return LifecycleResult.NOT_FOUND

        self.logger.info(f"Code {code_id} deleted by {owner_id}")
        return LifecycleResult.OK

    async def _check_owner(self, code_id: UUID, owner_id: str) -> LifecycleResult:
        code = await self.store.get_code(code_id)
        if code is None:
            return LifecycleResult.NOT_FOUND
        if not await self.identity.is_owner(str(owner_id), code.product_id):
            return LifecycleResult.NOT_OWNER
        return LifecycleResult.OK

    @staticmethod
    def _parse_type(discount_type) -> DiscountType:
        try:
            return DiscountType(discount_type)
        except ValueError:
            raise ValidationError("Discount type must be 'percentage' or 'fixed'")

    @staticmethod
    def _parse_value(discount_value) -> Decimal:
        try:
            value = Decimal(str(discount_value))
        except (InvalidOperation, TypeError):
            raise ValidationError("Please enter a valid discount value")
        if not value.is_finite():
            raise ValidationError("Please enter a valid discount value")
        # stored as NUMERIC(12, 2)
        if value.normalize().as_tuple().exponent < -2:
            raise ValidationError("Discount value can have at most 2 decimal places")
        return value

    @staticmethod
    def _localize(expires_at: datetime) -> datetime:
        """Naive expiry dates are in the shop's timezone"""
        if expires_at.tzinfo is None:
            expires_at = pytz.timezone(Config.TIMEZONE).localize(expires_at)
        return as_utc(expires_at)
