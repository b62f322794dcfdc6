from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.responses import success_body
from core.safe_handler import safe_handler
from fintechs.gateway import PaymentGateway
from fintechs.paystack import get_payment_gateway
from models.enums import BookingStatus, PaymentStatus
from models.models import User
from schemas.schema import (
    BookingOut,
    BookingStatsOut,
    BookingStatusUpdate,
    PaginatedBookings,
)
from services.booking_service import BookingService

router = APIRouter(tags=["Admin Bookings"])


@cbv(router)
class AdminBookingRoutes:
    @router.get("/admin/bookings")
    @safe_handler
    async def list_bookings(
        self,
        booking_status: Optional[BookingStatus] = Query(None, alias="status"),
        payment_status: Optional[PaymentStatus] = Query(None),
        property_id: Optional[UUID] = Query(None),
        user_id: Optional[UUID] = Query(None),
        page: int = Query(1),
        limit: int = Query(10),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        result = await BookingService(db, gateway).list_bookings(
            current_user,
            booking_status=booking_status,
            payment_status=payment_status,
            property_id=property_id,
            user_id=user_id,
            page=page,
            limit=limit,
        )
        return success_body(
            "Bookings retrieved",
            PaginatedBookings(
                items=[BookingOut.model_validate(b) for b in result["items"]],
                pagination=result["pagination"],
            ),
        )

    @router.get("/admin/bookings/stats")
    @safe_handler
    async def booking_stats(
        self,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        stats = await BookingService(db, gateway).booking_stats(current_user)
        return success_body(
            "Booking statistics retrieved", BookingStatsOut(**stats)
        )

    @router.patch("/admin/bookings/{booking_id}")
    @safe_handler
    async def update_status(
        self,
        booking_id: UUID,
        data: BookingStatusUpdate,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        booking = await BookingService(db, gateway).update_status(
            booking_id, data.booking_status, current_user
        )
        return success_body("Booking updated", BookingOut.model_validate(booking))

    @router.post("/admin/bookings/{booking_id}/cancel")
    @safe_handler
    async def cancel_booking(
        self,
        booking_id: UUID,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        service = BookingService(db, gateway)
        await service.permission.check_admin(current_user)
        booking = await service.cancel(booking_id, current_user)
        return success_body("Booking cancelled", BookingOut.model_validate(booking))
