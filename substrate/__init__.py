"""Coordination substrate for the mind.

A fixed society of small engines talks only through typed signals on a
shared bus, and together they push on one damped affective state. A
scheduler ticks everything at a fixed rate; slow calls to the reasoning
service go through bridges so the tick never waits.

Key concepts:
- Signals: Typed, prioritized, optionally targeted messages
- Bus: Per-subscription queues, delivered once per tick
- Self-State: Six damped dimensions engines nudge but never set directly
- Engines: process a batch when one arrived, otherwise take an idle step
- Bridges: one request in flight, results come back as signals

Usage:
    from substrate import EngineId, Scheduler, SignalType, make_signal
    from substrate.bridge import ThoughtBridge
    from engines import build_default_engines

    scheduler = Scheduler(tick_hz=60)
    scheduler.register_all(*build_default_engines())
    bridge = ThoughtBridge(scheduler.bus, client)

    # Inject text from the outside world
    scheduler.bus.emit(make_signal(SignalType.TEXT_INPUT, EngineId.EXTERNAL, {"text": "hi"}))

    await scheduler.run()

The bridges live in `substrate.bridge` and are not imported here, since
they pull in the HTTP client.
"""

from .signals import (
    Signal,
    SignalType,
    Priority,
    EngineId,
    make_signal,
)
from .bus import SignalBus, Subscription
from .state import (
    DIMENSIONS,
    SelfState,
    SelfStateStore,
    SelfStateFile,
    StateConfig,
    validate_snapshot,
)
from .errors import (
    UnknownDimensionError,
    SnapshotValidationError,
    EngineRegistrationError,
)
from .engine import Engine, EngineStatus
from .scheduler import Scheduler
from .autonomy import (
    CadenceConfig,
    IdleCadence,
    ThoughtStream,
    ThoughtComposer,
    RandomContentProvider,
    choose_category,
)

__all__ = [
    # Signals
    "Signal",
    "SignalType",
    "Priority",
    "EngineId",
    "make_signal",
    # Bus
    "SignalBus",
    "Subscription",
    # Self-State
    "DIMENSIONS",
    "SelfState",
    "SelfStateStore",
    "SelfStateFile",
    "StateConfig",
    "validate_snapshot",
    # Errors
    "UnknownDimensionError",
    "SnapshotValidationError",
    "EngineRegistrationError",
    # Engines and scheduling
    "Engine",
    "EngineStatus",
    "Scheduler",
    # Autonomy
    "CadenceConfig",
    "IdleCadence",
    "ThoughtStream",
    "ThoughtComposer",
    "RandomContentProvider",
    "choose_category",
]
