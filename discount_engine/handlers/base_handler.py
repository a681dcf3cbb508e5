# discount_engine/handlers/base_handler.py
from typing import Optional
from telegram import InlineKeyboardMarkup, Update
from ..utils.keyboards import Keyboards
from ..utils.messages import Messages

class BaseHandler:
    """Base class for chat handlers"""
    def __init__(self):
        self.keyboards = Keyboards()
        self.messages = Messages()

    @staticmethod
    def current_user_id(update: Update) -> str:
        """Identity of the person talking to the bot"""
        return str(update.effective_user.id)

    @staticmethod
    async def reply(update: Update, text: str,
                    reply_markup: Optional[InlineKeyboardMarkup] = None):
        """Answer a command or edit the message behind a button press"""
        if update.callback_query:
            await update.callback_query.answer()
            await update.callback_query.edit_message_text(text, reply_markup=reply_markup)
        else:
            await update.message.reply_text(text, reply_markup=reply_markup)
