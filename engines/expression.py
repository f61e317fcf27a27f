"""Outbound side: what the mind says and what it thinks to itself."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, FrozenSet, List, Optional

from substrate.engine import Engine
from substrate.signals import EngineId, Signal, SignalType

logger = logging.getLogger(__name__)


@dataclass
class Utterance:
    kind: str  # "say" or "think"
    text: str
    category: str = ""
    degraded: bool = False


class ExpressionEngine(Engine):
    """Collects utterances and hands them to the presentation layer.

    `on_say` gets replies meant for the person, `on_think` gets wandering
    thoughts. Both are optional; everything also lands in `outbox`.
    """

    def __init__(
        self,
        on_say: Optional[Callable[[Utterance], None]] = None,
        on_think: Optional[Callable[[Utterance], None]] = None,
        outbox_size: int = 100,
    ):
        super().__init__(EngineId.EXPRESSION)
        self.on_say = on_say
        self.on_think = on_think
        self.outbox: Deque[Utterance] = deque(maxlen=outbox_size)

    def subscribes_to(self) -> FrozenSet[SignalType]:
        return frozenset({SignalType.EXPRESSION, SignalType.DEFAULT_MODE_THOUGHT})

    def process(self, signals: List[Signal]) -> None:
        for signal in signals:
            if signal.type == SignalType.EXPRESSION:
                utterance = Utterance(
                    kind="say",
                    text=str(signal.payload.get("text", "")),
                    degraded=bool(signal.payload.get("degraded", False)),
                )
                callback = self.on_say
            else:
                utterance = Utterance(
                    kind="think",
                    text=str(signal.payload.get("thought", "")),
                    category=str(signal.payload.get("category", "")),
                )
                callback = self.on_think

            if not utterance.text:
                continue
            self.outbox.append(utterance)
            if callback is not None:
                callback(utterance)
            self.debug_info = f'{utterance.kind}: "{utterance.text[:35]}"'

    def drain(self) -> List[Utterance]:
        items = list(self.outbox)
        self.outbox.clear()
        return items
