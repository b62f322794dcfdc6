from datetime import datetime
from typing import Optional
from uuid import UUID

from core.date_helper import count_nights, to_naive_utc
from core.exceptions import InvalidInputError
from repos.booking_repo import BookingRepo


class AvailabilityService:
    def __init__(self, db):
        self.db = db
        self.repo: BookingRepo = BookingRepo(db)

    @staticmethod
    def nights_between(check_in: datetime, check_out: datetime) -> int:
        nights = count_nights(check_in, check_out)
        if nights <= 0:
            raise InvalidInputError("Check-out date must be after check-in date")
        return nights

    async def has_conflict(
        self,
        property_id: UUID,
        check_in: datetime,
        check_out: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> bool:
        """True when a confirmed booking on the property overlaps [check_in, check_out)."""
        existing = await self.repo.find_confirmed_overlap(
            property_id,
            to_naive_utc(check_in),
            to_naive_utc(check_out),
            exclude_booking_id=exclude_booking_id,
        )
        return existing is not None
