"""
Order status state machine and its time-based driver.

    Preparing --> On the way --> Delivered
        \              \
         +--------------+--> Cancelled   (explicit admin action only)

The sweep advances orders by age since ``order_date`` using global
thresholds. It is a pair of conditional bulk UPDATEs, so running it again
with no newly eligible orders changes nothing.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update

from .metrics import ORDER_STATUS_TRANSITIONS, ORDER_SWEEP_RUNS
from .models import Order, OrderStatus, utcnow

logger = logging.getLogger("food-service.lifecycle")

ALLOWED_TRANSITIONS = {
    OrderStatus.PREPARING: {OrderStatus.ON_THE_WAY, OrderStatus.CANCELLED},
    OrderStatus.ON_THE_WAY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}


class IllegalTransition(Exception):
    def __init__(self, current: OrderStatus, new: OrderStatus):
        super().__init__(f"cannot move order from {current.value!r} to {new.value!r}")
        self.current = current
        self.new = new


def check_transition(current: OrderStatus, new: OrderStatus, force: bool = False):
    """Raise IllegalTransition unless ``current -> new`` is a legal move.

    Re-applying the current status is a no-op and always allowed. ``force``
    is the administrative override for backward or out-of-graph moves.
    """
    if force or current == new:
        return
    if new not in ALLOWED_TRANSITIONS[current]:
        raise IllegalTransition(current, new)


@dataclass(frozen=True)
class Thresholds:
    preparing_minutes: int = 15
    delivery_minutes: int = 20

    @property
    def preparing(self) -> timedelta:
        return timedelta(minutes=self.preparing_minutes)

    @property
    def delivered(self) -> timedelta:
        return timedelta(minutes=self.preparing_minutes + self.delivery_minutes)


@dataclass(frozen=True)
class SweepResult:
    to_on_the_way: int = 0
    to_delivered: int = 0

    @property
    def total(self) -> int:
        return self.to_on_the_way + self.to_delivered


def sweep(session, thresholds: Thresholds, now: Optional[datetime] = None) -> SweepResult:
    """Advance every order whose age has crossed a threshold. One transaction."""
    now = now or utcnow()

    # Delivered first, so an order moved to On the way in this tick is not also delivered
    to_delivered = session.execute(
        update(Order)
        .where(Order.status == OrderStatus.ON_THE_WAY)
        .where(Order.order_date <= now - thresholds.delivered)
        .values(status=OrderStatus.DELIVERED)
        .execution_options(synchronize_session=False)
    ).rowcount

    to_on_the_way = session.execute(
        update(Order)
        .where(Order.status == OrderStatus.PREPARING)
        .where(Order.order_date <= now - thresholds.preparing)
        .values(status=OrderStatus.ON_THE_WAY)
        .execution_options(synchronize_session=False)
    ).rowcount

    session.commit()

    if to_on_the_way:
        ORDER_STATUS_TRANSITIONS.labels("sweep", OrderStatus.ON_THE_WAY.value).inc(to_on_the_way)
    if to_delivered:
        ORDER_STATUS_TRANSITIONS.labels("sweep", OrderStatus.DELIVERED.value).inc(to_delivered)

    return SweepResult(to_on_the_way=to_on_the_way, to_delivered=to_delivered)


class OrderStatusSweeper:
    """Runs ``sweep`` every ``interval_seconds`` on a daemon thread.

    Owned by the application lifespan: ``start()`` on startup, ``stop()`` on
    shutdown. A failed tick is logged and retried on the next one.
    """

    def __init__(self, session_factory, thresholds: Thresholds, interval_seconds: float = 30.0):
        self.session_factory = session_factory
        self.thresholds = thresholds
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: Optional[datetime] = None) -> Optional[SweepResult]:
        session = self.session_factory()
        try:
            result = sweep(session, self.thresholds, now=now)
        except Exception:
            session.rollback()
            ORDER_SWEEP_RUNS.labels("error").inc()
            logger.exception("Order status sweep failed", extra={"correlation_id": "sweep"})
            return None
        finally:
            session.close()

        ORDER_SWEEP_RUNS.labels("ok").inc()
        if result.total:
            logger.info(
                f"Sweep advanced {result.to_on_the_way} order(s) to 'On the way', "
                f"{result.to_delivered} to 'Delivered'",
                extra={"correlation_id": "sweep"},
            )
        return result

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="order-status-sweeper", daemon=True)
        self._thread.start()
        logger.info(
            f"Order status sweeper started (every {self.interval_seconds}s)",
            extra={"correlation_id": "sweep"},
        )

    def stop(self, timeout: Optional[float] = 5.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Order status sweeper did not stop in time", extra={"correlation_id": "sweep"})
                return
            self._thread = None
        logger.info("Order status sweeper stopped", extra={"correlation_id": "sweep"})

    def _loop(self):
        while not self._stop.wait(self.interval_seconds):
            self.run_once()
