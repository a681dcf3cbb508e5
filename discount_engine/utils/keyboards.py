# discount_engine/utils/keyboards.py
from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from ..models.discount import DiscountCode

class Keyboards:
    @staticmethod
    def code_actions(code: DiscountCode) -> InlineKeyboardMarkup:
        """Toggle and delete buttons for one code"""
        toggle_label = "⏸ Deactivate" if code.is_active else "▶️ Activate"
        keyboard = [[
            InlineKeyboardButton(toggle_label, callback_data=f"toggle_code_{code.code_id}"),
            InlineKeyboardButton("🗑 Delete", callback_data=f"delete_code_{code.code_id}")
        ]]
        return InlineKeyboardMarkup(keyboard)

