import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from core.date_helper import to_naive_utc, utcnow
from core.get_db import AsyncSessionLocal
from models.enums import BookingStatus
from repos.booking_repo import BookingRepo

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    scanned: int = 0
    completed: int = 0
    failed: List[UUID] = field(default_factory=list)


class BookingExpirySweeper:
    """Moves confirmed bookings whose check-out has passed to completed."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def _complete_one(self, booking_id: UUID, now: datetime) -> bool:
        async with self.session_factory() as session:
            booking = await BookingRepo(session).get_by_id(booking_id)
            if (
                booking is None
                or booking.booking_status != BookingStatus.CONFIRMED
                or booking.check_out_date >= now
            ):
                return False
            booking.booking_status = BookingStatus.COMPLETED
            await session.commit()
            return True

    async def run(self, now: Optional[datetime] = None) -> SweepResult:
        now = to_naive_utc(now) if now else utcnow()
        result = SweepResult()

        async with self.session_factory() as session:
            booking_ids = await BookingRepo(session).confirmed_ids_ending_before(now)

        if not booking_ids:
            logger.info("No expired bookings found")
            return result

        logger.info(f"Found {len(booking_ids)} expired bookings to mark as completed")
        for booking_id in booking_ids:
            result.scanned += 1
            try:
                if await self._complete_one(booking_id, now):
                    result.completed += 1
            except Exception as e:
                logger.error(f"Failed to complete booking {booking_id}: {e}", exc_info=True)
                result.failed.append(booking_id)

        logger.info(
            f"Marked {result.completed} bookings as completed, {len(result.failed)} failed"
        )
        return result
