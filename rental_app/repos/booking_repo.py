from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update

from core.date_helper import utcnow
from models.enums import BookingStatus, PaymentStatus
from models.models import Booking


class BookingRepo:
    def __init__(self, db):
        self.db = db

    async def create(
        self,
        *,
        user_id: UUID,
        property_id: UUID,
        check_in_date: datetime,
        check_out_date: datetime,
        number_of_guests: int,
        total_amount: Decimal,
        payment_reference: str,
    ) -> Booking:
        booking = Booking(
            user_id=user_id,
            property_id=property_id,
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            number_of_guests=number_of_guests,
            total_amount=total_amount,
            booking_status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            payment_reference=payment_reference,
        )
        self.db.add(booking)
        await self.db.flush()
        return booking

    async def get_by_id(self, booking_id: UUID) -> Booking | None:
        result = await self.db.execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    async def get_by_reference(self, reference: str) -> Booking | None:
        result = await self.db.execute(
            select(Booking).where(Booking.payment_reference == reference)
        )
        return result.scalar_one_or_none()

    async def mark_payment_failed(self, booking_id: UUID) -> bool:
        # Never downgrades a booking another request already settled.
        result = await self.db.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.payment_status != PaymentStatus.PAID,
            )
            .values(payment_status=PaymentStatus.FAILED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def find_confirmed_overlap(
        self,
        property_id: UUID,
        check_in: datetime,
        check_out: datetime,
        exclude_booking_id: Optional[UUID] = None,
    ) -> Booking | None:
        stmt = select(Booking).where(
            Booking.property_id == property_id,
            Booking.booking_status == BookingStatus.CONFIRMED,
            Booking.check_in_date < check_out,
            Booking.check_out_date > check_in,
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)

        result = await self.db.execute(stmt.limit(1))
        return result.scalars().first()

    async def list_for_user(
        self, user_id: UUID, page: int = 1, per_page: int = 10
    ) -> Tuple[List[Booking], int]:
        return await self._paginate(
            select(Booking).where(Booking.user_id == user_id), page, per_page
        )

    async def list_filtered(
        self,
        *,
        booking_status: Optional[BookingStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        property_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Tuple[List[Booking], int]:
        stmt = select(Booking)
        if booking_status is not None:
            stmt = stmt.where(Booking.booking_status == booking_status)
        if payment_status is not None:
            stmt = stmt.where(Booking.payment_status == payment_status)
        if property_id is not None:
            stmt = stmt.where(Booking.property_id == property_id)
        if user_id is not None:
            stmt = stmt.where(Booking.user_id == user_id)
        return await self._paginate(stmt, page, per_page)

    async def _paginate(self, stmt, page: int, per_page: int):
        total = await self.db.scalar(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )
        result = await self.db.execute(
            stmt.order_by(Booking.created_at.desc(), Booking.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().all()), int(total or 0)

    async def confirmed_ids_ending_before(self, moment: datetime) -> List[UUID]:
        result = await self.db.execute(
            select(Booking.id)
            .where(
                Booking.booking_status == BookingStatus.CONFIRMED,
                Booking.check_out_date < moment,
            )
            .order_by(Booking.check_out_date)
        )
        return list(result.scalars().all())

    async def count_by_status(self) -> dict:
        result = await self.db.execute(
            select(Booking.booking_status, func.count(Booking.id)).group_by(
                Booking.booking_status
            )
        )
        counts = {status.value: 0 for status in BookingStatus}
        for status, count in result.all():
            counts[BookingStatus(status).value] = count
        return counts
