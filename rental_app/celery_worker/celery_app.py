import logging

from celery import Celery
from celery.schedules import crontab

from core.settings import settings
from tasks.expire_bookings import create_booking_expiry_task

logger = logging.getLogger(__name__)


class CeleryManager:
    def __init__(self):
        self.REDIS_URL = settings.CELERY_REDIS_URL

        self.app = Celery(
            "rental_tasks",
            broker=self.REDIS_URL,
            backend=self.REDIS_URL,
            include=["tasks.expire_bookings"],
        )

        self.app.conf.update(
            task_serializer="json",
            task_track_started=True,
            accept_content=["json"],
            result_serializer="json",
            timezone="UTC",
            enable_utc=True,
            broker_connection_retry=True,
            broker_connection_retry_on_startup=True,
            broker_connection_max_retries=None,
            task_acks_late=False,
            redis_socket_keepalive=True,
            redis_socket_timeout=30,
            broker_transport_options={"visibility_timeout": 3600},
            worker_hijack_root_logger=False,
        )

        BookingExpiryTask = create_booking_expiry_task(self.app)
        self.app.register_task(BookingExpiryTask())

        self.app.conf.beat_schedule = {
            "expire-completed-bookings-daily": {
                "task": "expire_completed_bookings",
                "schedule": crontab(
                    hour=settings.EXPIRY_SWEEP_HOUR,
                    minute=settings.EXPIRY_SWEEP_MINUTE,
                ),
            },
        }

    def delay(self, func_name: str, *args, **kwargs):
        return self.app.send_task(func_name, args=args, kwargs=kwargs)


celery_app = CeleryManager()
app = celery_app.app
