"""
Dispatch events

The engine decides which event happened and who may see it; delivering it
(sockets, push, SMS) belongs to whoever subscribes to the bus.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from roadside.logger import get_logger

logger = get_logger("roadside.domain.dispatching.events")

REQUEST_CREATED = 'request.created'
REQUEST_BROADCAST = 'request.broadcast'
REQUEST_ASSIGNED = 'request.assigned'
REQUEST_TAKEN = 'request.taken'
REQUEST_STATUS_CHANGED = 'request.status_changed'
REQUEST_CANCELLED = 'request.cancelled'
MESSAGE_POSTED = 'message.posted'
PAYMENT_SUCCEEDED = 'payment.succeeded'
PAYMENT_FAILED = 'payment.failed'
PAYMENT_REFUNDED = 'payment.refunded'
REVIEW_CREATED = 'review.created'


@dataclass(frozen=True)
class DispatchEvent:
    name: str
    request_id: Optional[int]
    # User ids allowed to receive the event
    audience: Tuple[int, ...] = ()
    payload: dict = field(default_factory=dict)


class DispatchEventBus:
    """
    Small synchronous event bus.

    Usage:
        bus = DispatchEventBus()
        bus.on(REQUEST_ASSIGNED, handler)
        bus.emit(REQUEST_ASSIGNED, request_id, audience=[customer_id], payload={...})

    Handlers run in registration order after the triggering write has
    committed. A failing handler is logged and never undoes the write.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Callable[[DispatchEvent], None]]] = {}
        self._catch_all: List[Callable[[DispatchEvent], None]] = []

    def on(self, name: str, handler: Callable[[DispatchEvent], None]) -> None:
        self._handlers.setdefault(name, []).append(handler)

    def on_any(self, handler: Callable[[DispatchEvent], None]) -> None:
        self._catch_all.append(handler)

    def emit(self, name: str, request_id: Optional[int], audience=(), payload: Optional[dict] = None) -> DispatchEvent:
        event = DispatchEvent(
            name=name,
            request_id=request_id,
            audience=tuple(a for a in audience if a is not None),
            payload=payload or {},
        )
        logger.debug(f"Event {name} for request {request_id} -> {len(event.audience)} recipient(s)")

        for handler in self._handlers.get(name, []) + self._catch_all:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler error for {name}: {e}", exc_info=True)
        return event
