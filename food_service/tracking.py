"""
Client-side order tracking.

The server only advances statuses on its sweep interval while clients poll
more often, so a tracking view re-derives a status from the order's age and
reconciles it with the status the API reports. The backend value wins
whenever it is recognised, except that a non-terminal backend status that
lags behind the age-based estimate is shown as the estimate until the next
sweep catches up.

All response shapes the API (or older deployments of it) may return are
decoded here, once, into ``TrackedOrder``.
"""
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, List, Optional

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from .config import FOOD_SERVICE_URL, TRACKING_POLL_SECONDS
from .lifecycle import TERMINAL_STATUSES, Thresholds
from .models import OrderStatus

logger = logging.getLogger("food-service.tracking")

DISPLAY_LABELS = {
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.ON_THE_WAY: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

MESSAGES = {
    OrderStatus.PREPARING: "The restaurant is preparing your food.",
    OrderStatus.ON_THE_WAY: "Your order is on the way.",
    OrderStatus.DELIVERED: "Your order has been delivered. Enjoy your meal!",
    OrderStatus.CANCELLED: "This order was cancelled.",
}

_PROGRESS = {OrderStatus.PREPARING: 0, OrderStatus.ON_THE_WAY: 1, OrderStatus.DELIVERED: 2}

_STATUS_SPELLINGS = {s.value.lower(): s for s in OrderStatus}
_STATUS_SPELLINGS.update({"canceled": OrderStatus.CANCELLED, "out for delivery": OrderStatus.ON_THE_WAY})


class TrackingError(Exception):
    pass


class TrackingDecodeError(TrackingError):
    pass


class OrderNotFound(TrackingError):
    pass


# ----- Canonical decoded shape -----

class TrackedItem(BaseModel):
    name: Optional[str] = None
    price: float = 0.0
    quantity: int = 1


class TrackedOrder(BaseModel):
    order_id: int = Field(validation_alias=AliasChoices("order_id", "id", "orderId"))
    status: Optional[str] = Field(None, validation_alias=AliasChoices("status", "state", "status_name"))
    created_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("created_at", "order_date", "createdAt", "orderDate", "timestamp"),
    )
    total_amount: Optional[float] = None
    restaurant_id: Optional[int] = None
    restaurant_name: Optional[str] = None
    items: List[TrackedItem] = []


def _unwrap(payload: Any) -> Any:
    while isinstance(payload, dict):
        for key in ("order", "data", "orders"):
            if key in payload and isinstance(payload[key], (dict, list)):
                payload = payload[key]
                break
        else:
            return payload
    return payload


def decode_order(payload: Any) -> TrackedOrder:
    """Decode one order from a bare object, a wrapper object or a one-element list."""
    payload = _unwrap(payload)
    if isinstance(payload, list):
        if not payload:
            raise TrackingDecodeError("Order data is empty")
        payload = _unwrap(payload[0])
    if not isinstance(payload, dict):
        raise TrackingDecodeError(f"Unexpected order payload: {type(payload).__name__}")
    try:
        return TrackedOrder.model_validate(payload)
    except ValidationError as e:
        raise TrackingDecodeError(str(e)) from e


def decode_orders(payload: Any) -> List[TrackedOrder]:
    payload = _unwrap(payload)
    if payload is None:
        return []
    if isinstance(payload, dict):
        return [decode_order(payload)]
    if isinstance(payload, list):
        return [decode_order(p) for p in payload]
    raise TrackingDecodeError(f"Unexpected orders payload: {type(payload).__name__}")


def parse_status(raw: Optional[str]) -> Optional[OrderStatus]:
    if raw is None:
        return None
    return _STATUS_SPELLINGS.get(str(raw).strip().lower())


# ----- Estimation and reconciliation -----

@dataclass(frozen=True)
class StatusEstimate:
    status: OrderStatus
    time_left: int  # minutes
    message: str
    source: str  # "backend" or "estimate"

    @property
    def label(self) -> str:
        return DISPLAY_LABELS[self.status]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        # the API serialises naive UTC timestamps
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_minutes(created_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    now = _as_utc(now or datetime.now(timezone.utc))
    if created_at is None:
        return 0
    seconds = (now - _as_utc(created_at)).total_seconds()
    return max(0, math.floor(seconds / 60))


def _time_left(status: OrderStatus, elapsed: int, thresholds: Thresholds) -> int:
    if status == OrderStatus.PREPARING:
        return max(thresholds.preparing_minutes - elapsed, 0)
    if status == OrderStatus.ON_THE_WAY:
        return max(thresholds.preparing_minutes + thresholds.delivery_minutes - elapsed, 0)
    return 0


def estimate_status(
    created_at: Optional[datetime],
    now: Optional[datetime] = None,
    thresholds: Thresholds = Thresholds(),
) -> StatusEstimate:
    elapsed = elapsed_minutes(created_at, now)
    if elapsed < thresholds.preparing_minutes:
        status = OrderStatus.PREPARING
    elif elapsed < thresholds.preparing_minutes + thresholds.delivery_minutes:
        status = OrderStatus.ON_THE_WAY
    else:
        status = OrderStatus.DELIVERED
    return StatusEstimate(status, _time_left(status, elapsed, thresholds), MESSAGES[status], "estimate")


def reconcile(
    order: TrackedOrder,
    now: Optional[datetime] = None,
    thresholds: Thresholds = Thresholds(),
) -> StatusEstimate:
    estimate = estimate_status(order.created_at, now, thresholds)
    backend = parse_status(order.status)

    if backend is None:
        return estimate
    if backend in TERMINAL_STATUSES:
        return StatusEstimate(backend, 0, MESSAGES[backend], "backend")
    if _PROGRESS[estimate.status] > _PROGRESS[backend]:
        # the sweep has not caught up with this order yet
        return estimate

    elapsed = elapsed_minutes(order.created_at, now)
    return StatusEstimate(backend, _time_left(backend, elapsed, thresholds), MESSAGES[backend], "backend")


# ----- API client -----

@dataclass(frozen=True)
class Tracking:
    order: TrackedOrder
    estimate: StatusEstimate


class TrackingClient:
    def __init__(
        self,
        base_url: str = FOOD_SERVICE_URL,
        token: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        thresholds: Thresholds = Thresholds(),
        timeout: float = 5.0,
    ):
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(base_url=base_url, timeout=timeout)
        self.token = token
        self.thresholds = thresholds

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        if self._owns_client:
            self._client.close()

    def _get(self, path: str) -> Any:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        r = self._client.get(path, headers=headers)
        if r.status_code == 404:
            raise OrderNotFound(path)
        r.raise_for_status()
        return r.json()

    def get_order(self, order_id: int) -> TrackedOrder:
        return decode_order(self._get(f"/orders/{order_id}"))

    def get_history(self) -> List[TrackedOrder]:
        return decode_orders(self._get("/orders/history"))

    def track(self, order_id: int, now: Optional[datetime] = None) -> Tracking:
        order = self.get_order(order_id)
        return Tracking(order, reconcile(order, now, self.thresholds))

    def history(self, now: Optional[datetime] = None) -> List[Tracking]:
        return [Tracking(o, reconcile(o, now, self.thresholds)) for o in self.get_history()]

    def poll(
        self,
        order_id: int,
        interval: float = TRACKING_POLL_SECONDS,
        until_terminal: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Iterator[Tracking]:
        """Yield a fresh ``Tracking`` every ``interval`` seconds.

        Network failures are logged and retried on the next interval; HTTP
        errors (including a missing order) propagate.
        """
        while True:
            try:
                tracking = self.track(order_id)
            except httpx.TransportError as e:
                logger.warning(f"Polling order {order_id} failed: {e}")
            else:
                yield tracking
                if until_terminal and tracking.estimate.is_terminal:
                    return
            sleep(interval)
