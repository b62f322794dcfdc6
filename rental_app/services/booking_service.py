import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from core.check_permission import ADMIN_ONLY, ANY_ROLE, CheckRolePermission
from core.date_helper import to_naive_utc
from core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    UpstreamFailureError,
)
from core.paginate import PaginatePage
from core.settings import settings
from fintechs.gateway import PaymentGateway, PaymentVerification
from models.enums import BOOKING_TRANSITIONS, BookingStatus, PaymentStatus
from models.models import Booking, Payment
from repos.booking_repo import BookingRepo
from repos.payment_repo import PaymentRepo
from repos.property_repo import PropertyRepo

from .availability_service import AvailabilityService
from .booking_holds import BookingHoldRegistry, booking_holds

logger = logging.getLogger(__name__)


def generate_reference() -> str:
    return f"BKG-{uuid.uuid4().hex}"


@dataclass
class PaymentConfirmation:
    outcome: str
    booking: Booking
    payment: Optional[Payment] = None

    CONFIRMED = "confirmed"
    ALREADY_PROCESSED = "already_processed"
    FAILED = "failed"
    PAID_NOT_CONFIRMED = "paid_not_confirmed"

    @property
    def succeeded(self) -> bool:
        return self.outcome != self.FAILED


class BookingService:
    def __init__(
        self,
        db,
        gateway: PaymentGateway,
        holds: BookingHoldRegistry | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.holds = holds or booking_holds
        self.repo: BookingRepo = BookingRepo(db)
        self.payment_repo: PaymentRepo = PaymentRepo(db)
        self.property_repo: PropertyRepo = PropertyRepo(db)
        self.availability: AvailabilityService = AvailabilityService(db)
        self.permission: CheckRolePermission = CheckRolePermission()
        self.paginator = PaginatePage()
        self.gateway_timeout = settings.PAYSTACK_TIMEOUT_SECONDS

    async def create_booking(
        self,
        renter,
        property_id: UUID,
        check_in: datetime,
        check_out: datetime,
        number_of_guests: int,
    ) -> dict:
        await self.permission.require(renter, ANY_ROLE)

        check_in = to_naive_utc(check_in)
        check_out = to_naive_utc(check_out)
        nights = self.availability.nights_between(check_in, check_out)
        if number_of_guests is None or number_of_guests < 1:
            raise InvalidInputError("Number of guests must be at least 1")

        prop = await self.property_repo.get_by_id(property_id)
        if not prop:
            raise NotFoundError("Property not found")

        async with self.holds.hold(prop.id, check_in, check_out):
            if await self.availability.has_conflict(prop.id, check_in, check_out):
                raise ConflictError("Property is not available for the selected dates")

            total_amount = (Decimal(str(prop.rent)) * nights).quantize(Decimal("0.01"))
            booking = await self.repo.create(
                user_id=renter.id,
                property_id=prop.id,
                check_in_date=check_in,
                check_out_date=check_out,
                number_of_guests=number_of_guests,
                total_amount=total_amount,
                payment_reference=generate_reference(),
            )
            await self.db.commit()

            try:
                session = await asyncio.wait_for(
                    self.gateway.initialize(
                        email=renter.email,
                        amount=total_amount,
                        callback_url=settings.PAYMENT_CALLBACK_URL,
                        reference=booking.payment_reference,
                    ),
                    timeout=self.gateway_timeout,
                )
            except asyncio.TimeoutError:
                logger.error(
                    f"Payment initialization timed out for booking {booking.id}"
                )
                raise UpstreamFailureError(
                    "Payment provider timed out. Your booking is saved as pending."
                )
            except UpstreamFailureError:
                raise
            except Exception as e:
                logger.error(
                    f"Payment initialization failed for booking {booking.id}: {e}"
                )
                raise UpstreamFailureError(
                    "Payment provider is unavailable. Your booking is saved as pending."
                )

            if session.reference and session.reference != booking.payment_reference:
                booking.payment_reference = session.reference
                await self.db.commit()

        logger.info(
            f"Booking {booking.id} created for property {prop.id}: "
            f"{nights} night(s), total {total_amount}"
        )
        return {
            "booking": booking,
            "payment_url": session.redirect_url,
            "reference": booking.payment_reference,
        }

    async def _verify(self, reference: str) -> Optional[PaymentVerification]:
        try:
            return await asyncio.wait_for(
                self.gateway.verify(reference), timeout=self.gateway_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Payment verification timed out for {reference}")
        except Exception as e:
            logger.error(f"Payment verification failed for {reference}: {e}")
        return None

    async def confirm_payment(self, reference: str) -> PaymentConfirmation:
        if not reference or not reference.strip():
            raise InvalidInputError("Payment reference is required")
        reference = reference.strip()

        booking = await self.repo.get_by_reference(reference)
        if not booking:
            raise NotFoundError("Booking not found for this payment reference")

        if booking.payment_status == PaymentStatus.PAID:
            return await self._already_processed(booking, reference)

        verification = await self._verify(reference)
        if verification is None or not verification.succeeded:
            await self.repo.mark_payment_failed(booking.id)
            await self.db.commit()
            await self.db.refresh(booking)
            if booking.payment_status == PaymentStatus.PAID:
                return await self._already_processed(booking, reference)
            logger.warning(f"Payment {reference} failed verification")
            return PaymentConfirmation(PaymentConfirmation.FAILED, booking)

        return await self._settle(booking, reference, verification)

    async def _already_processed(self, booking: Booking, reference: str):
        await self.db.refresh(booking)
        payment = await self.payment_repo.get_by_reference(reference)
        return PaymentConfirmation(
            PaymentConfirmation.ALREADY_PROCESSED, booking, payment
        )

    async def _settle(
        self, booking: Booking, reference: str, verification: PaymentVerification
    ) -> PaymentConfirmation:
        booking_id = booking.id
        property_id = booking.property_id

        async with self.holds.lock(property_id):
            await self.property_repo.lock_for_update(property_id)
            await self.db.refresh(booking)

            if booking.payment_status == PaymentStatus.PAID:
                await self.db.commit()
                return await self._already_processed(booking, reference)

            if verification.amount_major != Decimal(str(booking.total_amount)):
                logger.warning(
                    f"Paid amount {verification.amount_major} differs from booking "
                    f"total {booking.total_amount} for {reference}"
                )

            try:
                payment = await self.payment_repo.create(
                    user_id=booking.user_id,
                    booking_id=booking_id,
                    amount=verification.amount_major,
                    reference=reference,
                    channel=verification.channel,
                    paid_at=verification.paid_at,
                )
            except IntegrityError:
                # A concurrent confirmation recorded this reference first.
                await self.db.rollback()
                return await self._already_processed(booking, reference)

            booking.payment_status = PaymentStatus.PAID
            booking.payment_id = payment.id
            outcome = PaymentConfirmation.CONFIRMED

            if booking.booking_status == BookingStatus.PENDING:
                if await self.availability.has_conflict(
                    property_id,
                    booking.check_in_date,
                    booking.check_out_date,
                    exclude_booking_id=booking_id,
                ):
                    logger.error(
                        f"Booking {booking_id} was paid but overlaps a confirmed "
                        f"booking; left pending for manual resolution"
                    )
                    outcome = PaymentConfirmation.PAID_NOT_CONFIRMED
                else:
                    booking.booking_status = BookingStatus.CONFIRMED
            elif booking.booking_status != BookingStatus.CONFIRMED:
                logger.warning(
                    f"Payment {reference} arrived for {booking.booking_status.value} "
                    f"booking {booking_id}"
                )
                outcome = PaymentConfirmation.PAID_NOT_CONFIRMED

            await self.db.commit()

        logger.info(f"Payment {reference} settled for booking {booking_id}: {outcome}")
        return PaymentConfirmation(outcome, booking, payment)

    async def cancel(self, booking_id: UUID, actor) -> Booking:
        booking = await self.repo.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")

        if booking.user_id != actor.id and not self.permission.is_admin(actor):
            raise ForbiddenError("You can only cancel your own bookings")

        if booking.booking_status == BookingStatus.CANCELLED:
            raise InvalidStateError("Booking is already cancelled")

        booking.booking_status = BookingStatus.CANCELLED
        await self.db.commit()
        logger.info(f"Booking {booking_id} cancelled by {actor.id}")
        return booking

    async def list_user_bookings(self, user, page: int = 1, limit: int = 10) -> dict:
        page, limit = self.paginator.clamp(page, limit)
        items, total = await self.repo.list_for_user(user.id, page, limit)
        return {"items": items, "pagination": self.paginator.meta(page, limit, total)}

    async def get_user_booking(self, user, booking_id: UUID) -> Booking:
        booking = await self.repo.get_by_id(booking_id)
        if not booking or (
            booking.user_id != user.id and not self.permission.is_admin(user)
        ):
            raise NotFoundError("Booking not found")
        return booking

    async def list_bookings(
        self,
        actor,
        *,
        booking_status: Optional[BookingStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        property_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        await self.permission.require(actor, ADMIN_ONLY)
        page, limit = self.paginator.clamp(page, limit)
        items, total = await self.repo.list_filtered(
            booking_status=booking_status,
            payment_status=payment_status,
            property_id=property_id,
            user_id=user_id,
            page=page,
            per_page=limit,
        )
        return {"items": items, "pagination": self.paginator.meta(page, limit, total)}

    async def update_status(
        self, booking_id: UUID, new_status: BookingStatus, actor
    ) -> Booking:
        await self.permission.require(actor, ADMIN_ONLY)

        booking = await self.repo.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")

        current = booking.booking_status
        if new_status == current:
            return booking
        if new_status not in BOOKING_TRANSITIONS[current]:
            raise InvalidStateError(
                f"Cannot move a {current.value} booking to {new_status.value}"
            )

        if new_status == BookingStatus.CONFIRMED:
            if booking.payment_status != PaymentStatus.PAID:
                raise InvalidStateError("Only paid bookings can be confirmed")
            async with self.holds.lock(booking.property_id):
                await self.property_repo.lock_for_update(booking.property_id)
                if await self.availability.has_conflict(
                    booking.property_id,
                    booking.check_in_date,
                    booking.check_out_date,
                    exclude_booking_id=booking.id,
                ):
                    await self.db.rollback()
                    raise ConflictError("Property is not available for the selected dates")
                booking.booking_status = new_status
                await self.db.commit()
        else:
            booking.booking_status = new_status
            await self.db.commit()

        logger.info(
            f"Booking {booking_id} moved {current.value} -> {new_status.value} by {actor.id}"
        )
        return booking

    async def booking_stats(self, actor) -> dict:
        await self.permission.require(actor, ADMIN_ONLY)
        counts = await self.repo.count_by_status()
        return {
            "total": sum(counts.values()),
            "by_status": counts,
            "revenue": await self.payment_repo.total_paid(),
        }
