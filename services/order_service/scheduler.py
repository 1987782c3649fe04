import asyncio
import random

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.config import settings
from shared.observability import ecomm_scheduled_transitions_total
from .exceptions import ValidationError
from .models import OrderStatus, utcnow
from .repository import OrderRepository
from .state_machine import transition

logger = structlog.get_logger(__name__)


class OrderStatusScheduler:
    """
    Advances checked-out orders from SHIPPING to DELIVERED after a random delay.

    One fire-and-forget task per order, no retry and no re-arm. A manual cancel
    does not touch the task: when it fires it re-reads the order and does
    nothing unless the order is still SHIPPING. Failures are logged and leave
    the order in its last persisted state for operator reconciliation.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        min_delay_ms: int = settings.STATUS_UPDATE_MIN_DELAY_MS,
        max_delay_ms: int = settings.STATUS_UPDATE_MAX_DELAY_MS,
        rng: random.Random | None = None,
    ):
        if min_delay_ms < 0 or min_delay_ms > max_delay_ms:
            raise ValidationError(
                f"Invalid scheduler delay window [{min_delay_ms}, {max_delay_ms}] ms",
                code="invalid_scheduler_window",
            )
        self._session_factory = session_factory
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        # Jitter only spreads load; no security requirement on the generator
        self._random = rng or random.Random()
        self._tasks: dict[str, asyncio.Task] = {}

    def next_delay_ms(self) -> int:
        return self._random.randint(self.min_delay_ms, self.max_delay_ms)

    def schedule(self, order_id: str) -> asyncio.Task:
        delay_ms = self.next_delay_ms()
        task = asyncio.get_running_loop().create_task(
            self._run(order_id, delay_ms), name=f"order-status-{order_id}"
        )
        self._tasks[order_id] = task
        task.add_done_callback(lambda t: self._forget(order_id, t))
        logger.info("status_update_scheduled", order_id=order_id, delay_ms=delay_ms)
        return task

    def scheduled_task(self, order_id: str) -> asyncio.Task | None:
        return self._tasks.get(order_id)

    @property
    def pending_order_ids(self) -> list[str]:
        return list(self._tasks)

    def _forget(self, order_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]

    async def _run(self, order_id: str, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        try:
            await self.process_order(order_id)
        except Exception:
            ecomm_scheduled_transitions_total.labels(outcome="failed").inc()
            logger.exception("status_update_failed", order_id=order_id)

    async def process_order(self, order_id: str) -> OrderStatus | None:
        """Runs the recheck guard and the SHIPPING -> DELIVERED transition once."""
        async with self._session_factory() as db:
            order = await OrderRepository.get_order(db, order_id)
            if order is None:
                ecomm_scheduled_transitions_total.labels(outcome="missing").inc()
                logger.warning("status_update_order_missing", order_id=order_id)
                return None

            if order.status != OrderStatus.SHIPPING:
                ecomm_scheduled_transitions_total.labels(outcome="skipped").inc()
                logger.info("status_update_skipped", order_id=order_id, status=order.status.value)
                return order.status

            transition(order, OrderStatus.DELIVERED)
            order.order_date = utcnow()
            await OrderRepository.save(db, order)

        ecomm_scheduled_transitions_total.labels(outcome="delivered").inc()
        logger.info("order_delivered", order_id=order_id)
        return OrderStatus.DELIVERED

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.warning("status_updates_abandoned", count=len(tasks))
