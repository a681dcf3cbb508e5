"""Telegram handlers"""
from .base_handler import BaseHandler
from .discount_handlers import DiscountHandler

__all__ = [
    'BaseHandler',
    'DiscountHandler'
]
