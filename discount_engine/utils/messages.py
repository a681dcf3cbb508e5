# discount_engine/utils/messages.py
from datetime import datetime
from typing import List
from ..models.discount import DiscountCode
from ..models.redemption import RedemptionOutcome, RedemptionStatus
from ..utils.formatters import format_date, format_discount, format_price, format_uses

_PREVIEW_ERRORS = {
    RedemptionStatus.NOT_FOUND: "❌ Invalid discount code.",
    RedemptionStatus.EXPIRED: "⌛ This discount code has expired.",
    RedemptionStatus.INACTIVE: "⏸ This discount code is not active.",
    RedemptionStatus.EXHAUSTED: "🚫 This discount code has reached its usage limit.",
}

class Messages:
    @staticmethod
    def status_badges(code: DiscountCode, now: datetime) -> List[str]:
        """Badges shown on the management screen"""
        expired = code.is_expired(now)
        badges = []
        if expired:
            badges.append("Expired")
        if code.is_maxed_out:
            badges.append("Max uses reached")
        if not code.is_active and not expired and not code.is_maxed_out:
            badges.append("Inactive")
        return badges

    @classmethod
    def format_code(cls, code: DiscountCode, now: datetime) -> str:
        expiry = "Expires " + format_date(code.expires_at) if code.expires_at else "No expiration"
        if code.expires_at and code.is_expired(now):
            expiry = "Expired " + format_date(code.expires_at)

        text = (
            f"🎫 {code.code} · {format_discount(code)}\n"
            f"👥 {format_uses(code)}\n"
            f"📅 {expiry}\n"
        )
        badges = cls.status_badges(code, now)
        if badges:
            text += "⚠️ " + ", ".join(badges) + "\n"
        return text

    @staticmethod
    def code_created(code: DiscountCode) -> str:
        return (
            "✅ Discount code created successfully!\n\n"
            f"🎫 Code: {code.code}\n"
            f"💰 Discount: {format_discount(code)}\n"
            f"👥 {format_uses(code)}\n"
            f"📅 Expires: {format_date(code.expires_at)}\n"
        )

    @staticmethod
    def preview(outcome: RedemptionOutcome) -> str:
        if outcome.status not in (RedemptionStatus.ELIGIBLE, RedemptionStatus.RESERVED):
            return _PREVIEW_ERRORS[outcome.status]
        return (
            "✅ Discount code is valid\n\n"
            f"💰 Discount: {format_price(outcome.discount_amount)}\n"
            f"📊 Final price: {format_price(outcome.final_price)}"
        )
