import threading
from typing import List, Optional

import pytest

from clients.reasoning import ReasoningError, ReflectRequest, ReflectResponse, ThinkRequest, ThinkResponse
from config_loader import reset_config
from substrate import Scheduler, SignalBus, SelfStateStore, Signal, SignalType


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChannel:
    """Blocking stand-in for the reasoning client.

    With a gate set, `think` blocks until the gate is opened, so tests can
    hold a request in flight.
    """

    def __init__(
        self,
        text: str = "I hear you.",
        shift: Optional[dict] = None,
        thought: str = "A quiet thought.",
        fail: bool = False,
        gate: Optional[threading.Event] = None,
    ):
        self.text = text
        self.shift = shift
        self.thought = thought
        self.fail = fail
        self.gate = gate
        self.think_requests: List[ThinkRequest] = []
        self.reflect_requests: List[ReflectRequest] = []

    def think(self, request: ThinkRequest) -> ThinkResponse:
        self.think_requests.append(request)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail:
            raise ReasoningError("service down", status_code=503)
        return ThinkResponse(text=self.text, emotionShift=self.shift)

    def reflect(self, request: ReflectRequest) -> ReflectResponse:
        self.reflect_requests.append(request)
        if self.fail:
            raise ReasoningError("service down", status_code=503)
        return ReflectResponse(thought=self.thought)


class Observer:
    """Non-engine subscriber that just records what it is handed."""

    def __init__(self, bus: SignalBus, engine_id: str, *types: SignalType):
        self.received: List[Signal] = []
        self.subscription_id = bus.subscribe(engine_id, types, self.received.extend)

    def pull(self, bus: SignalBus) -> List[Signal]:
        """Take this observer's pending batch without running a tick."""
        batch = bus.take_pending().get(self.subscription_id, [])
        self.received.extend(batch)
        return batch

    def of_type(self, signal_type: SignalType) -> List[Signal]:
        return [s for s in self.received if s.type == signal_type]


def pull_all(bus: SignalBus, *observers: Observer) -> None:
    """Hand every observer its pending batch in one swap."""
    pending = bus.take_pending()
    for observer in observers:
        observer.received.extend(pending.get(observer.subscription_id, []))


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return SignalBus(debug_history=50)


@pytest.fixture
def state():
    return SelfStateStore()


@pytest.fixture
def scheduler(bus, state):
    return Scheduler(bus=bus, state=state, tick_hz=1000)
