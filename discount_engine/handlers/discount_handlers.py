# discount_engine/handlers/discount_handlers.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from telegram import Update
from telegram.ext import BaseHandler as TelegramHandler, CallbackQueryHandler, CommandHandler, ContextTypes
from .base_handler import BaseHandler
from ..exceptions import DiscountError
from ..models.base import utcnow
from ..models.redemption import LifecycleResult

NEW_CODE_USAGE = (
    "Usage: /newcode <product_id> <CODE> <percentage|fixed> <value> "
    "[max_uses|-] [YYYY-MM-DD [HH:MM]]"
)

_LIFECYCLE_ERRORS = {
    LifecycleResult.NOT_FOUND: "❌ Discount code not found.",
    LifecycleResult.NOT_OWNER: "❌ You do not have permission to manage this product.",
}

class DiscountHandler(BaseHandler):
    """Seller commands for discount codes and a buyer price preview"""

    def __init__(self, discount_service, redemption_service, catalog):
        super().__init__()
        self.discount_service = discount_service
        self.redemption_service = redemption_service
        self.catalog = catalog

    def get_handlers(self) -> List[TelegramHandler]:
        return [
            CommandHandler("codes", self.list_codes),
            CommandHandler("newcode", self.create_code),
            CommandHandler("checkcode", self.check_code),
            CallbackQueryHandler(self.toggle_code, pattern=r"^toggle_code_"),
            CallbackQueryHandler(self.delete_code, pattern=r"^delete_code_"),
        ]

    async def list_codes(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/codes <product_id>"""
        if len(context.args) != 1:
            await update.message.reply_text("Usage: /codes <product_id>")
            return

        product_id = context.args[0]
        try:
            codes = await self.discount_service.list_codes(product_id, self.current_user_id(update))
        except DiscountError as e:
            await update.message.reply_text(f"❌ {e}")
            return

        if not codes:
            await update.message.reply_text("📝 No discount codes yet.")
            return

        now = utcnow()
        for code in codes:
            await update.message.reply_text(
                self.messages.format_code(code, now),
                reply_markup=self.keyboards.code_actions(code)
            )

    async def create_code(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/newcode <product_id> <CODE> <percentage|fixed> <value> [max_uses|-] [date [time]]"""
        args = context.args
        if len(args) < 4 or len(args) > 7:
            await update.message.reply_text(NEW_CODE_USAGE)
            return

        product_id, code, discount_type, value = args[:4]
        try:
            max_uses = self._parse_max_uses(args[4] if len(args) > 4 else None)
            expires_at = self._parse_expiry(args[5:])
            created = await self.discount_service.create_code(
                owner_id=self.current_user_id(update),
                product_id=product_id,
                code=code,
                discount_type=discount_type.lower(),
                discount_value=value,
                max_uses=max_uses,
                expires_at=expires_at
            )
        except (DiscountError, ValueError) as e:
            await update.message.reply_text(f"❌ Error: {e}")
            return

        await update.message.reply_text(
            self.messages.code_created(created),
            reply_markup=self.keyboards.code_actions(created)
        )

    async def check_code(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/checkcode <product_id> <CODE>"""
        if len(context.args) != 2:
            await update.message.reply_text("Usage: /checkcode <product_id> <CODE>")
            return

        product_id, code = context.args
        price = await self.catalog.get_product_price(product_id)
        if price is None:
            await update.message.reply_text("❌ Product not found.")
            return

        outcome = await self.redemption_service.preview(code, product_id, price)
        await update.message.reply_text(self.messages.preview(outcome))

    async def toggle_code(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        code_id = self._callback_code_id(update.callback_query.data, "toggle_code_")
        if code_id is None:
            await self.reply(update, _LIFECYCLE_ERRORS[LifecycleResult.NOT_FOUND])
            return

        result = await self.discount_service.toggle_active(code_id, self.current_user_id(update))
        if result != LifecycleResult.OK:
            await self.reply(update, _LIFECYCLE_ERRORS[result])
            return

        code = await self.discount_service.get_code(code_id)
        if code is None:
            await self.reply(update, _LIFECYCLE_ERRORS[LifecycleResult.NOT_FOUND])
            return
        await self.reply(
            update,
            self.messages.format_code(code, utcnow()),
            reply_markup=self.keyboards.code_actions(code)
        )

    async def delete_code(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        code_id = self._callback_code_id(update.callback_query.data, "delete_code_")
        if code_id is None:
            await self.reply(update, _LIFECYCLE_ERRORS[LifecycleResult.NOT_FOUND])
            return

        result = await self.discount_service.delete_code(code_id, self.current_user_id(update))
        if result != LifecycleResult.OK:
            await self.reply(update, _LIFECYCLE_ERRORS[result])
            return

        await self.reply(update, "🗑 Discount code deleted successfully.")

    @staticmethod
    def _callback_code_id(data: str, prefix: str) -> Optional[UUID]:
        try:
            return UUID(data[len(prefix):])
        except ValueError:
            return None

    @staticmethod
    def _parse_max_uses(raw: Optional[str]) -> Optional[int]:
        if raw is None or raw == "-":
            return None
        if not raw.isdigit():
            raise ValueError("Maximum uses must be a positive whole number")
        return int(raw)

    @staticmethod
    def _parse_expiry(parts: List[str]) -> Optional[datetime]:
        """Date plus optional time; the time defaults to the end of the day"""
        if not parts:
            return None
        date_part = parts[0]
        time_part = parts[1] if len(parts) > 1 else "23:59"
        try:
            return datetime.strptime(f"{date_part} {time_part}", "%Y-%m-%d %H:%M")
        except ValueError:
            raise ValueError("Expiration must look like YYYY-MM-DD [HH:MM]")
