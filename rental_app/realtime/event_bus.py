import asyncio
import json
import logging
from typing import Awaitable, Callable, List, Optional

from fastapi.encoders import jsonable_encoder
from redis.asyncio import from_url
from tenacity import retry, stop_after_attempt, wait_exponential

from core.settings import settings

logger = logging.getLogger(__name__)

# (targets, event, payload, exclude_connection_id)
Handler = Callable[[List[str], str, dict, Optional[str]], Awaitable[None]]


def room_target(conversation_id) -> str:
    return f"conversation:{conversation_id}"


def user_target(user_id) -> str:
    return f"user:{user_id}"


EVERYONE = "everyone"


class EventBus:
    def __init__(self):
        self._handlers: List[Handler] = []

    def subscribe(self, handler: Handler):
        self._handlers.append(handler)

    async def _dispatch(self, targets, event, payload, exclude):
        for handler in self._handlers:
            try:
                await handler(targets, event, payload, exclude)
            except Exception as e:
                logger.error(f"Event handler failed for {event}: {e}", exc_info=True)

    async def publish(
        self,
        targets: List[str],
        event: str,
        payload: dict,
        exclude: Optional[str] = None,
    ):
        raise NotImplementedError

    async def start(self):
        return None

    async def stop(self):
        return None


class LocalEventBus(EventBus):
    """Delivers straight to in-process subscribers."""

    async def publish(self, targets, event, payload, exclude=None):
        await self._dispatch(list(targets), event, jsonable_encoder(payload), exclude)


class RedisEventBus(EventBus):
    """Fans events out to every app instance through Redis pub/sub."""

    def __init__(self, url: str, channel: str):
        super().__init__()
        self.url = url
        self.channel = channel
        self.redis = None
        self._listener: Optional[asyncio.Task] = None

    @retry(
        stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=1, max=10)
    )
    async def start(self):
        if self.redis is None:
            self.redis = from_url(self.url, encoding="utf-8", decode_responses=True)
        await self.redis.ping()

        if self._listener is None or self._listener.done():
            pubsub = self.redis.pubsub()
            await pubsub.subscribe(self.channel)
            self._listener = asyncio.create_task(self._listen(pubsub))
            logger.info(f"Listening for chat events on '{self.channel}'")

    async def _listen(self, pubsub):
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    envelope = json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning("Dropping malformed chat event")
                    continue
                await self._dispatch(
                    envelope["targets"],
                    envelope["event"],
                    envelope["payload"],
                    envelope.get("exclude"),
                )
        finally:
            await pubsub.aclose()

    async def publish(self, targets, event, payload, exclude=None):
        if self.redis is None:
            await self.start()
        envelope = {
            "targets": list(targets),
            "event": event,
            "payload": jsonable_encoder(payload),
            "exclude": exclude,
        }
        await self.redis.publish(self.channel, json.dumps(envelope))

    async def stop(self):
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None


def build_event_bus(url: Optional[str] = None) -> EventBus:
    url = url if url is not None else settings.REDIS_URL
    if url:
        return RedisEventBus(url, settings.CHAT_EVENTS_CHANNEL)
    return LocalEventBus()


event_bus = build_event_bus()
