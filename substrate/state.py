"""Self-State store - the shared, continuously damped affective state.

Engines never write `current` directly. They nudge `target`, and every
tick `update()` moves `current` a fixed fraction of the way there. A few
dimensions also drift toward a baseline on their own.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from .errors import SnapshotValidationError, UnknownDimensionError

logger = logging.getLogger(__name__)

DIMENSIONS: Tuple[str, ...] = ("valence", "arousal", "confidence", "energy", "social", "curiosity")

RANGES: Dict[str, Tuple[float, float]] = {
    dim: ((-1.0, 1.0) if dim == "valence" else (0.0, 1.0)) for dim in DIMENSIONS
}


@dataclass(frozen=True)
class SelfState:
    """Immutable snapshot of the damped `current` values."""
    valence: float = 0.0
    arousal: float = 0.3
    confidence: float = 0.5
    energy: float = 0.7
    social: float = 0.4
    curiosity: float = 0.5

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)

    def describe(self) -> str:
        """Short human-readable mood description."""
        parts = []
        if self.valence > 0.3:
            parts.append("feeling positive")
        elif self.valence < -0.3:
            parts.append("feeling negative")
        else:
            parts.append("emotionally neutral")
        if self.arousal > 0.6:
            parts.append("highly alert")
        elif self.arousal < 0.2:
            parts.append("very calm")
        if self.energy < 0.3:
            parts.append("low energy")
        if self.curiosity > 0.7:
            parts.append("very curious")
        return ", ".join(parts)


SELF_STATE_DEFAULTS = SelfState()


class SelfStateSnapshot(BaseModel):
    """Validated rehydration payload. Every dimension is required."""
    valence: float = Field(ge=-1.0, le=1.0)
    arousal: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    energy: float = Field(ge=0.0, le=1.0)
    social: float = Field(ge=0.0, le=1.0)
    curiosity: float = Field(ge=0.0, le=1.0)


@dataclass
class StateConfig:
    """Tuning for the damped dynamics.

    Attributes:
        damping: Fraction of the remaining gap closed per tick, in (0, 1)
        epsilon: Minimum movement before a new snapshot is published
        attractors: dimension -> (baseline, rate) pulled on `target` each tick
        energy_drain: Amount subtracted from the energy target each tick
    """
    damping: float = 0.1
    epsilon: float = 0.001
    attractors: Dict[str, Tuple[float, float]] = field(
        default_factory=lambda: {"arousal": (0.3, 0.001), "social": (0.4, 0.001)}
    )
    energy_drain: float = 0.0001

    def __post_init__(self) -> None:
        if not 0.0 < self.damping < 1.0:
            raise ValueError(f"damping must be in (0, 1), got {self.damping}")
        for dim in self.attractors:
            if dim not in RANGES:
                raise UnknownDimensionError(dim)


def clamp(dimension: str, value: float) -> float:
    low, high = RANGES[dimension]
    return max(low, min(high, value))


def validate_snapshot(state: Any) -> SelfState:
    """Check a full snapshot and return it as a SelfState.

    Raises SnapshotValidationError when a dimension is missing, not a
    number, or out of range.
    """
    if isinstance(state, SelfState):
        data = state.as_dict()
    elif isinstance(state, Mapping):
        data = dict(state)
    else:
        raise SnapshotValidationError(f"Snapshot must be a mapping, got {type(state).__name__}")
    try:
        checked = SelfStateSnapshot.model_validate(data)
    except ValidationError as exc:
        raise SnapshotValidationError(str(exc)) from exc
    return SelfState(**checked.model_dump())


class SelfStateStore:
    """Shared damped multi-dimensional value store.

    `snapshot` returns the same object until some `current` value moved
    by more than epsilon, so readers can detect change with `is`.
    """

    def __init__(self, initial: Optional[Mapping[str, float]] = None, config: Optional[StateConfig] = None):
        self.config = config or StateConfig()
        start = SELF_STATE_DEFAULTS.as_dict()
        for dim, value in (initial or {}).items():
            self._check(dim)
            start[dim] = clamp(dim, float(value))
        self._current: Dict[str, float] = dict(start)
        self._target: Dict[str, float] = dict(start)
        self._snapshot = SelfState(**self._current)
        self._listeners: Dict[int, Callable[[SelfState], None]] = {}
        self._next_listener = 0
        self._lock = threading.RLock()

    @property
    def snapshot(self) -> SelfState:
        return self._snapshot

    def get(self) -> SelfState:
        return self._snapshot

    def target_snapshot(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._target)

    def _check(self, dimension: str) -> None:
        if dimension not in RANGES:
            raise UnknownDimensionError(dimension)

    def nudge(self, dimension: str, delta: float) -> None:
        """Add delta to a dimension's target, clamped to its range."""
        self._check(dimension)
        with self._lock:
            self._target[dimension] = clamp(dimension, self._target[dimension] + float(delta))

    def set_target(self, dimension: str, value: float) -> None:
        self._check(dimension)
        with self._lock:
            self._target[dimension] = clamp(dimension, float(value))

    def apply_shift(self, shift: Mapping[str, Optional[float]]) -> None:
        """Apply several nudges at once.

        An unknown key or a non-numeric delta rejects the whole shift
        before any target moves.
        """
        deltas: Dict[str, float] = {}
        for dimension, delta in shift.items():
            self._check(dimension)
            if delta is None:
                continue
            try:
                deltas[dimension] = float(delta)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Non-numeric shift for {dimension}: {delta!r}") from exc
        with self._lock:
            for dimension, delta in deltas.items():
                self._target[dimension] = clamp(dimension, self._target[dimension] + delta)

    def update(self) -> bool:
        """Advance one tick. Returns True when a new snapshot was published."""
        cfg = self.config
        with self._lock:
            for dim in DIMENSIONS:
                diff = self._target[dim] - self._current[dim]
                if diff:
                    self._current[dim] = clamp(dim, self._current[dim] + diff * cfg.damping)

            for dim, (baseline, rate) in cfg.attractors.items():
                self._target[dim] = clamp(dim, self._target[dim] + (baseline - self._target[dim]) * rate)
            if cfg.energy_drain:
                self._target["energy"] = clamp("energy", self._target["energy"] - cfg.energy_drain)

            published = self._snapshot.as_dict()
            changed = any(abs(self._current[d] - published[d]) > cfg.epsilon for d in DIMENSIONS)
            if changed:
                self._snapshot = SelfState(**self._current)
        if changed:
            self._notify()
        return changed

    def restore(self, state: Any) -> SelfState:
        """Force current and target to a validated snapshot and publish it."""
        checked = validate_snapshot(state)
        with self._lock:
            self._current = checked.as_dict()
            self._target = checked.as_dict()
            self._snapshot = checked
        logger.info("Self-state restored: %s", checked.describe())
        self._notify()
        return checked

    def subscribe(self, listener: Callable[[SelfState], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        key = self._next_listener
        self._next_listener += 1
        self._listeners[key] = listener

        def _unsubscribe() -> None:
            self._listeners.pop(key, None)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self._snapshot
        for listener in list(self._listeners.values()):
            listener(snapshot)


class SelfStateFile:
    """JSON persistence for the snapshot between sessions."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[SelfState]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return validate_snapshot(data)
        except (OSError, json.JSONDecodeError, SnapshotValidationError) as exc:
            logger.warning("Ignoring unreadable self-state file %s: %s", self.path, exc)
            return None

    def save(self, state: SelfState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(state.as_dict(), indent=2, sort_keys=True),
            encoding="utf-8",
        )
