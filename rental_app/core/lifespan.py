import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.rabbitmq import rabbitmq
from realtime.event_bus import event_bus

from .kv_store import kv_store
from .settings import settings

logger = logging.getLogger("startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Waiting for application startup...")

    try:
        await kv_store.connect()
        logger.info(f"Key-value store ready ({type(kv_store).__name__}).")
    except Exception:
        logger.exception("Key-value store connection failed")

    try:
        await event_bus.start()
        logger.info(f"Event bus started ({type(event_bus).__name__}).")
    except Exception:
        logger.exception("Event bus failed to start")

    if rabbitmq.configured:
        try:
            await rabbitmq.declare_exchange(settings.RABBITMQ_MAIN_EXCHANGE)
            logger.info("RabbitMQ connected.")
        except Exception:
            logger.exception("RabbitMQ connection failed")
    else:
        logger.info("RabbitMQ not configured, push notifications disabled.")

    logger.info("Application startup complete.")

    yield

    try:
        await event_bus.stop()
    except Exception:
        logger.exception("Failed to stop event bus")

    try:
        await rabbitmq.close()
    except Exception:
        logger.exception("Failed to close RabbitMQ connection")

    try:
        await kv_store.close()
    except Exception:
        logger.exception("Failed to close key-value store")
