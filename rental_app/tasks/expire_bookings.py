import asyncio
import logging

from core.get_db import build_engine, build_sessionmaker
from core.settings import settings
from services.booking_expiry_service import BookingExpirySweeper

logger = logging.getLogger(__name__)


def create_booking_expiry_task(app):
    class BookingExpiryTask(app.Task):
        name = "expire_completed_bookings"

        autoretry_for = (ConnectionError,)
        retry_backoff = True
        retry_jitter = True
        max_retries = 3
        default_retry_delay = 30

        def _run_async(self, coro):
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                return loop.run_until_complete(coro)
            finally:
                loop.close()

        async def _sweep(self):
            # Pooled connections cannot outlive the per-run event loop.
            engine = build_engine(settings.DATABASE_URL)
            try:
                return await BookingExpirySweeper(build_sessionmaker(engine)).run()
            finally:
                await engine.dispose()

        def run(self):
            result = self._run_async(self._sweep())
            logger.info(
                f"Expiry sweep finished: {result.completed}/{result.scanned} completed"
            )
            return {
                "scanned": result.scanned,
                "completed": result.completed,
                "failed": [str(booking_id) for booking_id in result.failed],
            }

    return BookingExpiryTask
