"""Signal bus - typed publish/subscribe routing between engines.

Emitted signals are never delivered inline. They are queued per
subscription and handed out once per tick by the scheduler, so anything
emitted while a batch is being handled shows up on the following tick.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, FrozenSet, Iterable, List, Optional

from .signals import EngineId, Signal, SignalType

logger = logging.getLogger(__name__)

DeliveryCallback = Callable[[List[Signal]], None]


@dataclass(frozen=True)
class Subscription:
    id: str
    engine_id: str
    types: FrozenSet[SignalType]
    callback: DeliveryCallback

    def accepts(self, signal: Signal) -> bool:
        return signal.type in self.types and signal.is_for(self.engine_id)


class SignalBus:
    """Routes signals to subscriptions by type and optional target set.

    Delivery order within one subscription's batch is emission order.
    Nothing is guaranteed across subscriptions.
    """

    def __init__(self, debug_history: int = 0) -> None:
        self._subscriptions: Dict[str, Subscription] = {}
        self._pending: Dict[str, List[Signal]] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.emitted_count = 0
        self.delivered_count = 0
        self._recent: Optional[Deque[Signal]] = deque(maxlen=debug_history) if debug_history > 0 else None

    def subscribe(
        self,
        engine_id: str,
        types: Iterable[SignalType],
        callback: DeliveryCallback,
    ) -> str:
        """Register interest in a set of signal types.

        Returns the subscription id. Subscribing the same engine twice
        creates two independent subscriptions.
        """
        type_set = frozenset(SignalType(t) for t in types)
        if not type_set:
            raise ValueError("subscribe requires at least one signal type")
        engine_key = engine_id.value if isinstance(engine_id, EngineId) else str(engine_id)
        with self._lock:
            sub_id = f"sub-{next(self._ids)}"
            self._subscriptions[sub_id] = Subscription(
                id=sub_id,
                engine_id=engine_key,
                types=type_set,
                callback=callback,
            )
        logger.debug("Subscribed %s to %s as %s", engine_key, sorted(t.value for t in type_set), sub_id)
        return sub_id

    def unsubscribe(self, subscription_id: str) -> None:
        with self._lock:
            self._subscriptions.pop(subscription_id, None)
            self._pending.pop(subscription_id, None)

    def emit(self, signal: Signal) -> int:
        """Queue a signal for every matching subscription.

        Returns how many subscriptions it was queued for. Zero is not an
        error: targets that nobody registered are silently ignored.
        """
        queued = 0
        with self._lock:
            self.emitted_count += 1
            if self._recent is not None:
                self._recent.append(signal)
            for sub in self._subscriptions.values():
                if sub.accepts(signal):
                    self._pending.setdefault(sub.id, []).append(signal)
                    queued += 1
        if queued == 0:
            logger.debug("No subscriber for %s", signal)
        return queued

    def take_pending(self) -> Dict[str, List[Signal]]:
        """Swap out all pending batches, keyed by subscription id."""
        with self._lock:
            pending, self._pending = self._pending, {}
            pending = {sid: batch for sid, batch in pending.items() if sid in self._subscriptions}
            self.delivered_count += sum(len(batch) for batch in pending.values())
        return pending

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(subscription_id)

    def subscriptions(self) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.values())

    def pending_count(self) -> int:
        with self._lock:
            return sum(len(batch) for batch in self._pending.values())

    def get_recent(self, limit: int = 10) -> List[Signal]:
        """Recently emitted signals (only when debug_history was set)."""
        if self._recent is None:
            return []
        events = list(self._recent)
        return events[-limit:]

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "subscriptions": len(self._subscriptions),
                "pending": sum(len(batch) for batch in self._pending.values()),
                "emitted": self.emitted_count,
                "delivered": self.delivered_count,
            }
