# discount_engine/utils/formatters.py
from datetime import datetime
from decimal import Decimal
from typing import Optional
import pytz
from ..config import Config
from ..models.discount import DiscountCode, DiscountType

def format_price(amount: Decimal) -> str:
    return f"{Config.CURRENCY_SYMBOL}{Decimal(amount):,.2f}"

def format_datetime(dt: datetime) -> str:
    """Render an instant in the shop's timezone"""
    local_tz = pytz.timezone(Config.TIMEZONE)
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(local_tz).strftime("%Y-%m-%d %H:%M")

def format_date(dt: Optional[datetime]) -> str:
    if dt is None:
        return "never"
    return format_datetime(dt)[:10]

def format_discount(code: DiscountCode) -> str:
    if code.discount_type == DiscountType.PERCENTAGE:
        return f"{code.discount_value.normalize():f}% OFF"
    return f"{format_price(code.discount_value)} OFF"

def format_uses(code: DiscountCode) -> str:
    limit = code.max_uses if code.max_uses is not None else "∞"
    return f"{code.current_uses} / {limit} uses"
