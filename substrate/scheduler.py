"""The tick loop.

One tick = advance the Self-State, then give every registered engine
either its pending batch or an idle step, in registration order. All
in-process mutation happens inside a tick, so no two engines ever run
at the same time.
"""

from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from .bus import SignalBus
from .engine import Engine
from .errors import EngineRegistrationError
from .signals import Signal
from .state import SelfStateStore

logger = logging.getLogger(__name__)


class Scheduler:
    """Owns the bus, the Self-State store and the engine table."""

    def __init__(
        self,
        bus: Optional[SignalBus] = None,
        state: Optional[SelfStateStore] = None,
        tick_hz: float = 60.0,
    ):
        if tick_hz <= 0:
            raise ValueError(f"tick_hz must be positive, got {tick_hz}")
        self.bus = bus or SignalBus()
        self.state = state or SelfStateStore()
        self.tick_hz = tick_hz
        self.tick_count = 0
        self.engine_errors = 0
        self._engines: Dict[str, Engine] = {}
        self._engine_subs: Dict[str, str] = {}
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def engines(self) -> Mapping[str, Engine]:
        return MappingProxyType(self._engines)

    @property
    def running(self) -> bool:
        return self._running

    def register(self, engine: Engine) -> Engine:
        """Attach an engine to the bus and state and add it to the table."""
        if engine.id in self._engines:
            raise EngineRegistrationError(f"Engine id already registered: {engine.id}")
        interest = engine.attach(self.bus, self.state)
        # Engines receive batches through step(), so the bus callback is
        # never used for them.
        sub_id = self.bus.subscribe(engine.id, interest, engine.step)
        self._engines[engine.id] = engine
        self._engine_subs[sub_id] = engine.id
        logger.debug("Registered engine %s", engine.id)
        return engine

    def register_all(self, *engines: Engine) -> None:
        for engine in engines:
            self.register(engine)

    def tick(self) -> None:
        """Run one discrete simulation step."""
        self.state.update()
        pending = self.bus.take_pending()

        batches: Dict[str, List[Signal]] = {}
        for sub_id, engine_id in self._engine_subs.items():
            batches[engine_id] = pending.pop(sub_id, [])

        for engine in self._engines.values():
            self._run_engine(engine, batches.get(engine.id, []))

        # Non-engine subscribers (bridges) only hear about non-empty batches.
        for sub_id, batch in pending.items():
            sub = self.bus.get_subscription(sub_id)
            if sub is None or not batch:
                continue
            try:
                sub.callback(batch)
            except Exception:
                self.engine_errors += 1
                logger.exception("Subscriber %s failed on %d signals", sub.engine_id, len(batch))

        self.tick_count += 1

    def _run_engine(self, engine: Engine, batch: List[Signal]) -> None:
        try:
            engine.step(batch)
        except Exception:
            self.engine_errors += 1
            logger.exception("Engine %s failed (batch of %d)", engine.id, len(batch))

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """Tick at `tick_hz` until stopped or `max_ticks` is reached."""
        interval = 1.0 / self.tick_hz
        loop = asyncio.get_running_loop()
        self._running = True
        self._stop_event = asyncio.Event()
        logger.info("Scheduler started at %.1f Hz with %d engines", self.tick_hz, len(self._engines))
        ran = 0
        try:
            while not self._stop_event.is_set():
                if max_ticks is not None and ran >= max_ticks:
                    break
                started = loop.time()
                self.tick()
                ran += 1
                remaining = interval - (loop.time() - started)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=max(0.0, remaining))
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("Scheduler stopped after %d ticks", ran)

    def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def get_status(self) -> Dict[str, Any]:
        return {
            "tick": self.tick_count,
            "running": self._running,
            "engine_errors": self.engine_errors,
            "bus": self.bus.get_status(),
            "self_state": self.state.snapshot.as_dict(),
            "engines": {eid: engine.get_status() for eid, engine in self._engines.items()},
        }
