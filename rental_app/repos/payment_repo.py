import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select

from models.enums import PaymentProvider, PaymentStatus
from models.models import Payment


class PaymentRepo:
    def __init__(self, db):
        self.db = db

    async def get_by_reference(self, reference: str) -> Payment | None:
        result = await self.db.execute(
            select(Payment).where(Payment.reference == reference)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        user_id: uuid.UUID,
        booking_id: uuid.UUID,
        amount: Decimal,
        reference: str,
        channel: str | None,
        paid_at: datetime | None,
        gateway: PaymentProvider = PaymentProvider.PAYSTACK,
    ) -> Payment:
        payment = Payment(
            user_id=user_id,
            booking_id=booking_id,
            amount=amount,
            reference=reference,
            status=PaymentStatus.PAID,
            gateway=gateway,
            channel=channel,
            paid_at=paid_at,
        )
        self.db.add(payment)
        # Surfaces the unique reference violation here instead of at commit.
        await self.db.flush()
        return payment

    async def total_paid(self) -> Decimal:
        total = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.status == PaymentStatus.PAID
            )
        )
        return Decimal(str(total or 0))
