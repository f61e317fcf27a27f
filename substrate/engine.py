"""Engine contract.

An engine declares the signal types it listens to, handles a batch of
them when one is waiting, and gets an idle step on ticks when nothing
arrived. Exactly one of the two runs per tick.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union

from .bus import SignalBus
from .signals import EngineId, Priority, Signal, SignalType, TargetSpec, make_signal
from .state import SelfStateStore

logger = logging.getLogger(__name__)


class EngineStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"


class Engine:
    """Base for all engines.

    Subclasses implement `subscribes_to`, `process` and optionally
    `on_idle`. The bus and the Self-State store are attached by the
    scheduler at registration; engines hold no other shared state.
    """

    def __init__(self, engine_id: Union[str, EngineId]):
        self.id = engine_id.value if isinstance(engine_id, EngineId) else str(engine_id)
        self.status = EngineStatus.IDLE
        self.debug_info = ""
        self._bus: Optional[SignalBus] = None
        self._state: Optional[SelfStateStore] = None
        self._interest: Optional[FrozenSet[SignalType]] = None

    # -- contract ---------------------------------------------------------

    def subscribes_to(self) -> FrozenSet[SignalType]:
        raise NotImplementedError

    def process(self, signals: List[Signal]) -> None:
        raise NotImplementedError

    def on_idle(self) -> None:
        """Called on ticks with an empty batch. Default does nothing."""

    # -- wiring -----------------------------------------------------------

    def attach(self, bus: SignalBus, state: SelfStateStore) -> FrozenSet[SignalType]:
        """Bind to the bus and the state store; fixes the interest set."""
        self._bus = bus
        self._state = state
        self._interest = frozenset(self.subscribes_to())
        return self._interest

    @property
    def interest(self) -> FrozenSet[SignalType]:
        if self._interest is None:
            self._interest = frozenset(self.subscribes_to())
        return self._interest

    @property
    def bus(self) -> SignalBus:
        if self._bus is None:
            raise RuntimeError(f"Engine {self.id} is not registered")
        return self._bus

    @property
    def self_state(self) -> SelfStateStore:
        if self._state is None:
            raise RuntimeError(f"Engine {self.id} is not registered")
        return self._state

    def step(self, batch: List[Signal]) -> None:
        """Run one tick for this engine: process the batch or go idle."""
        self.status = EngineStatus.PROCESSING
        try:
            if batch:
                self.process(batch)
            else:
                self.on_idle()
        finally:
            self.status = EngineStatus.IDLE

    def emit(
        self,
        type: SignalType,
        payload: Optional[Dict[str, Any]] = None,
        target: TargetSpec = None,
        priority: Priority = Priority.MEDIUM,
    ) -> Signal:
        signal = make_signal(type, self.id, payload, target=target, priority=priority)
        self.bus.emit(signal)
        return signal

    def get_status(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "subscribes_to": sorted(t.value for t in self.interest),
            "debug": self.debug_info,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.status.value}>"
