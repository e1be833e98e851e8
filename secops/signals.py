"""Synchronous observer surface for state transitions.

Every service owns (or shares) a :class:`SignalBus`.  Signals are emitted
synchronously, after the state transition that caused them and before the
triggering call returns.  Subscribers observe; they cannot veto.  A handler
that raises is logged and skipped.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from secops.utils.logger import get_logger

logger = get_logger(__name__)


class Signal(str, Enum):
    WHITELIST_HIT = "whitelist-hit"
    THRESHOLD_APPROACHING = "threshold-approaching"
    BLOCK = "block"
    BLOCK_ESCALATED = "block-escalated"
    UNBLOCK = "unblock"
    WHITELIST_ADD = "whitelist-add"
    WHITELIST_REMOVE = "whitelist-remove"
    RATE_LIMITED = "rate-limited"
    GROUPED = "grouped"
    SENT = "sent"


Handler = Callable[[Signal, Dict[str, Any]], None]


class SignalBus:
    """Fan-out of signals to subscribed handlers."""

    def __init__(self) -> None:
        # None key holds wildcard subscribers
        self._handlers: Dict[Optional[Signal], List[Handler]] = {}

    def subscribe(self, signal: Optional[Signal], handler: Handler) -> Callable[[], None]:
        """Register *handler* for *signal* (``None`` subscribes to everything).

        Returns a callable that removes the subscription.
        """
        self._handlers.setdefault(signal, []).append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(signal, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def emit(self, signal: Signal, payload: Dict[str, Any]) -> None:
        handlers = list(self._handlers.get(signal, [])) + list(self._handlers.get(None, []))
        for handler in handlers:
            try:
                handler(signal, payload)
            except Exception:
                logger.exception("signal_handler_failed", signal=signal.value)
