import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import InvalidInputError
from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.responses import success_body
from core.safe_handler import safe_handler
from fintechs.gateway import PaymentGateway
from fintechs.paystack import get_payment_gateway
from models.models import User
from schemas.schema import (
    BookingCreate,
    BookingCreateOut,
    BookingOut,
    PaginatedBookings,
    PaymentConfirmationOut,
)
from services.booking_service import BookingService, PaymentConfirmation

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Bookings"])

CONFIRMATION_MESSAGES = {
    PaymentConfirmation.CONFIRMED: "Payment verified and booking confirmed",
    PaymentConfirmation.ALREADY_PROCESSED: "Payment already processed",
    PaymentConfirmation.PAID_NOT_CONFIRMED: (
        "Payment received but the dates are no longer available. "
        "Our team will contact you."
    ),
}


@cbv(router)
class BookingRoutes:
    @router.post("/bookings/create", status_code=201)
    @safe_handler
    async def create_booking(
        self,
        data: BookingCreate,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        result = await BookingService(db, gateway).create_booking(
            current_user,
            data.property_id,
            data.check_in_date,
            data.check_out_date,
            data.number_of_guests,
        )
        return success_body(
            "Booking created. Complete payment to confirm it.",
            BookingCreateOut(
                booking=BookingOut.model_validate(result["booking"]),
                payment_url=result["payment_url"],
                reference=result["reference"],
            ),
        )

    @router.get("/bookings/verify-payment")
    @safe_handler
    async def verify_payment(
        self,
        reference: str = Query(""),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        result = await BookingService(db, gateway).confirm_payment(reference)
        if not result.succeeded:
            raise InvalidInputError("Payment verification failed")

        return success_body(
            CONFIRMATION_MESSAGES[result.outcome],
            PaymentConfirmationOut.model_validate(result),
        )

    @router.get("/bookings")
    @safe_handler
    async def list_bookings(
        self,
        page: int = Query(1),
        limit: int = Query(10),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        result = await BookingService(db, gateway).list_user_bookings(
            current_user, page, limit
        )
        return success_body(
            "Bookings retrieved",
            PaginatedBookings(
                items=[BookingOut.model_validate(b) for b in result["items"]],
                pagination=result["pagination"],
            ),
        )

    @router.get("/bookings/{booking_id}")
    @safe_handler
    async def get_booking(
        self,
        booking_id: UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        booking = await BookingService(db, gateway).get_user_booking(
            current_user, booking_id
        )
        return success_body("Booking retrieved", BookingOut.model_validate(booking))

    @router.post("/bookings/{booking_id}/cancel")
    @safe_handler
    async def cancel_booking(
        self,
        booking_id: UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        booking = await BookingService(db, gateway).cancel(booking_id, current_user)
        return success_body("Booking cancelled", BookingOut.model_validate(booking))
