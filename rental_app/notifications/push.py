import logging
from typing import Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder

from core.event_publish import publish_event
from core.rabbitmq import rabbitmq

logger = logging.getLogger(__name__)


class PushNotifier:
    """Hands notifications for offline users to the delivery workers."""

    routing_key = "notification.push"

    async def notify(
        self, user_id: UUID, title: str, body: str, data: Optional[dict] = None
    ):
        if not rabbitmq.configured:
            logger.info(f"Push for {user_id} skipped, no broker configured")
            return

        payload = jsonable_encoder(
            {"user_id": user_id, "title": title, "body": body, "data": data or {}}
        )
        try:
            await publish_event(self.routing_key, payload)
        except Exception as e:
            # A missed push never blocks message delivery.
            logger.error(f"Push notification for {user_id} not queued: {e}")


push_notifier = PushNotifier()
