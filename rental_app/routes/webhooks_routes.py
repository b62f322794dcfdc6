from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_db import get_db_async
from core.responses import success_body
from core.safe_handler import safe_handler
from fintechs.gateway import PaymentGateway
from fintechs.paystack import get_payment_gateway
from webhooks.service_webhooks import PaymentWebhooks

router = APIRouter(tags=["Webhooks"])


@cbv(router)
class WebhookRoutes:
    @router.post("/paystack")
    @safe_handler
    async def paystack_webhook(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ):
        result = await PaymentWebhooks(db, request, gateway).paystack_webhook()
        return success_body("Webhook processed", result)
