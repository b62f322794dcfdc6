import json
import logging

import aio_pika
from aio_pika import ExchangeType, Message
from tenacity import retry, stop_after_attempt, wait_exponential

from .breaker import broker_breaker
from .settings import settings

logger = logging.getLogger(__name__)


class RabbitMQConnection:
    def __init__(self, url: str):
        self.url = url
        self.connection = None
        self.channel = None

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def connect(self):
        if not self.configured:
            raise ConnectionError("RABBITMQ_URL is not configured")
        if not self.connection or self.connection.is_closed:
            await self._open()

    @retry(
        stop=stop_after_attempt(5), wait=wait_exponential(multiplier=2, min=2, max=10)
    )
    async def _open(self):
        logger.info("Connecting to RabbitMQ...")
        self.connection = await aio_pika.connect_robust(self.url)
        self.channel = await self.connection.channel()
        logger.info("Connected to RabbitMQ.")

    async def declare_exchange(self, exchange_name: str):
        await self.connect()
        return await self.channel.declare_exchange(
            exchange_name, ExchangeType.TOPIC, durable=True
        )

    async def publish_json(self, exchange_name: str, routing_key: str, data: dict):
        async def handler():
            await self.connect()
            exchange = await self.channel.get_exchange(exchange_name)
            message = Message(
                body=json.dumps(data).encode(),
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            )
            await exchange.publish(message, routing_key=routing_key)
            logger.debug(f"Published message to {exchange_name}:{routing_key}")

        await broker_breaker.call(handler)

    async def close(self):
        if self.connection and not self.connection.is_closed:
            await self.connection.close()


rabbitmq = RabbitMQConnection(settings.RABBITMQ_URL)
