# discount_engine/bot.py
import asyncio
import logging
from telegram.ext import Application
from .config import Config
from .database.database import Database
from .handlers import DiscountHandler
from .services.discount_service import DiscountService
from .services.ledger import RedemptionLedger
from .services.postgres_store import PostgresCodeStore
from .services.product_service import ProductService
from .services.redemption_service import RedemptionService
from .services.sweeper import ReservationSweeper

class DiscountBot:
    def __init__(self, db: Database = None):
        """Wire storage, services and chat handlers together"""
        self.logger = logging.getLogger(__name__)
        self.db = db or Database()

        store = PostgresCodeStore(self.db)
        products = ProductService(self.db)
        self.ledger = RedemptionLedger(store)
        self.discount_service = DiscountService(store, catalog=products, identity=products)
        self.redemption_service = RedemptionService(store, self.ledger)
        self.sweeper = ReservationSweeper(self.ledger)

        self.application = Application.builder().token(Config.TELEGRAM_TOKEN).build()
        self.setup_handlers(DiscountHandler(self.discount_service, self.redemption_service, products))

    def setup_handlers(self, discount_handler: DiscountHandler):
        for handler in discount_handler.get_handlers():
            self.application.add_handler(handler)

    async def start(self):
        """Run until cancelled, then shut everything down in reverse order"""
        await self.db.connect()
        try:
            async with self.application:
                await self.application.start()
                await self.application.updater.start_polling()
                self.sweeper.start()
                try:
                    await asyncio.Event().wait()
                finally:
                    await self.sweeper.stop()
                    await self.application.updater.stop()
                    await self.application.stop()
        finally:
            await self.db.close()
