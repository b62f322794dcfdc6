import logging

from fastapi import Request
from pydantic import ValidationError

from core.exceptions import InvalidInputError, NotFoundError, UnauthorizedError
from fintech_verify_signature.verify_signature import FintechsVerifySignature
from fintechs.gateway import PaymentGateway
from schemas.schema import PaystackWebhookEvent
from services.booking_service import BookingService

logger = logging.getLogger(__name__)


class PaymentWebhooks:
    def __init__(self, db, request: Request, gateway: PaymentGateway):
        self.request = request
        self.booking_service: BookingService = BookingService(db, gateway)
        self.verify_signature: FintechsVerifySignature = FintechsVerifySignature()

    async def paystack_webhook(self) -> dict:
        raw_body = await self.request.body()
        signature = self.request.headers.get("x-paystack-signature")

        if not self.verify_signature.verify_paystack_signature(signature, raw_body):
            raise UnauthorizedError("Invalid signature")

        try:
            payload = PaystackWebhookEvent.model_validate_json(raw_body)
        except ValidationError:
            raise InvalidInputError("Malformed webhook payload")

        if payload.event != "charge.success":
            return {"status": "ignored"}

        reference = payload.data.get("reference")
        if not reference:
            raise InvalidInputError("Payment reference is required")

        try:
            result = await self.booking_service.confirm_payment(str(reference))
        except NotFoundError:
            logger.warning(f"Paystack webhook for unknown reference {reference}")
            return {"status": "unknown payment"}

        logger.info(f"Paystack webhook {reference}: {result.outcome}")
        return {"status": result.outcome}
