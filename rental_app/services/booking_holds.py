import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_delay,
    wait_random,
)

from core.date_helper import ranges_overlap, to_naive_utc
from core.exceptions import ConflictError
from core.kv_store import KeyValueStore, kv_store
from core.settings import settings

logger = logging.getLogger(__name__)


class _LockBusy(Exception):
    pass


class BookingHoldRegistry:
    """Short-lived claims on date ranges while a booking is being created.

    A claim is a compare-and-set on the key-value store guarded by a
    per-property mutex, so two overlapping creations racing on one property
    cannot both reach the payment gateway.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        hold_ttl: int | None = None,
        lock_ttl: int | None = None,
        lock_wait: float | None = None,
    ):
        self.store = store or kv_store
        self.hold_ttl = hold_ttl or settings.BOOKING_HOLD_TTL_SECONDS
        self.lock_ttl = lock_ttl or settings.BOOKING_LOCK_TTL_SECONDS
        self.lock_wait = lock_wait or settings.BOOKING_LOCK_WAIT_SECONDS

    @staticmethod
    def _holds_key(property_id: UUID) -> str:
        return f"booking-holds:{property_id}"

    @staticmethod
    def _mutex_key(property_id: UUID) -> str:
        return f"booking-mutex:{property_id}"

    @asynccontextmanager
    async def lock(self, property_id: UUID):
        key = self._mutex_key(property_id)
        token = uuid.uuid4().hex

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(self.lock_wait),
                wait=wait_random(min=0.01, max=0.05),
                retry=retry_if_exception_type(_LockBusy),
                reraise=True,
            ):
                with attempt:
                    if not await self.store.set_if_absent(key, token, self.lock_ttl):
                        raise _LockBusy(key)
        except _LockBusy:
            logger.warning(f"Timed out waiting for booking lock on {property_id}")
            raise ConflictError("This property is being booked, please try again")

        try:
            yield
        finally:
            released = await self.store.delete_if_equals(key, token)
            if not released:
                logger.warning(f"Booking lock on {property_id} expired before release")

    async def _load(self, property_id: UUID) -> list:
        raw = await self.store.get(self._holds_key(property_id))
        if not raw:
            return []
        now = time.time()
        return [h for h in json.loads(raw) if h["expires_at"] > now]

    async def _save(self, property_id: UUID, holds: list):
        key = self._holds_key(property_id)
        if holds:
            await self.store.set(key, json.dumps(holds), self.hold_ttl)
        else:
            await self.store.delete(key)

    async def claim(
        self, property_id: UUID, check_in: datetime, check_out: datetime
    ) -> str:
        check_in = to_naive_utc(check_in)
        check_out = to_naive_utc(check_out)

        async with self.lock(property_id):
            holds = await self._load(property_id)
            for hold in holds:
                if ranges_overlap(
                    check_in,
                    check_out,
                    datetime.fromisoformat(hold["check_in"]),
                    datetime.fromisoformat(hold["check_out"]),
                ):
                    raise ConflictError(
                        "Property is not available for the selected dates"
                    )

            token = uuid.uuid4().hex
            holds.append(
                {
                    "token": token,
                    "check_in": check_in.isoformat(),
                    "check_out": check_out.isoformat(),
                    "expires_at": time.time() + self.hold_ttl,
                }
            )
            await self._save(property_id, holds)
            return token

    async def release(self, property_id: UUID, token: str):
        async with self.lock(property_id):
            holds = await self._load(property_id)
            await self._save(property_id, [h for h in holds if h["token"] != token])

    @asynccontextmanager
    async def hold(self, property_id: UUID, check_in: datetime, check_out: datetime):
        token = await self.claim(property_id, check_in, check_out)
        try:
            yield token
        finally:
            try:
                await self.release(property_id, token)
            except Exception as e:
                # The hold expires on its own TTL.
                logger.error(f"Failed to release booking hold {token}: {e}")


booking_holds = BookingHoldRegistry()
