"""Arbiter - decides when the mind should think out loud.

A new attention focus is not answered straight away. The arbiter waits a
couple of ticks so the emotion, memory and empathy signals derived from
the same input can arrive, then emits one THOUGHT carrying all of it.

The thought bridge drops a THOUGHT that arrives while it is busy, so
every request carries a requestId and stays outstanding until a response
echoing it comes back. Outstanding requests are re-emitted every
`retry_ticks` ticks, up to `max_retries` times.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, FrozenSet, List, Mapping, Optional

from substrate.engine import Engine
from substrate.signals import EngineId, Priority, Signal, SignalType

logger = logging.getLogger(__name__)


@dataclass
class OutstandingThought:
    payload: Dict[str, Any]
    attempts: int = 1
    waited: int = 0


class ArbiterEngine(Engine):
    def __init__(
        self,
        settle_ticks: int = 2,
        context_size: int = 10,
        retry_ticks: int = 30,
        max_retries: int = 20,
        clock=time.monotonic,
    ):
        super().__init__(EngineId.ARBITER)
        if settle_ticks < 0:
            raise ValueError("settle_ticks cannot be negative")
        if retry_ticks < 1:
            raise ValueError("retry_ticks must be at least 1")
        self.settle_ticks = settle_ticks
        self.retry_ticks = retry_ticks
        self.max_retries = max_retries
        self.clock = clock
        self.context: Deque[str] = deque(maxlen=context_size)
        self.thoughts_requested = 0
        self.responses_received = 0
        self._pending: Optional[str] = None
        self._countdown = 0
        self._emotions: Optional[Dict[str, Any]] = None
        self._empathy: Optional[Dict[str, Any]] = None
        self._memories: List[str] = []
        self._request_ids = itertools.count(1)
        self._outstanding: "OrderedDict[int, OutstandingThought]" = OrderedDict()

    def subscribes_to(self) -> FrozenSet[SignalType]:
        return frozenset({
            SignalType.ATTENTION_FOCUS,
            SignalType.EMOTION_DETECTED,
            SignalType.EMPATHIC_STATE,
            SignalType.MEMORY_RESULT,
            SignalType.THOUGHT_RESPONSE,
        })

    @property
    def pending(self) -> Optional[str]:
        return self._pending

    @property
    def outstanding(self) -> List[int]:
        return list(self._outstanding)

    def process(self, signals: List[Signal]) -> None:
        focused = False
        for signal in signals:
            if signal.type == SignalType.ATTENTION_FOCUS:
                content = str(signal.payload.get("content", "")).strip()
                if not content:
                    continue
                if self._pending is not None:
                    # Superseded before we got to it; fold it into context
                    self.context.append(self._pending)
                self._pending = content
                self._countdown = self.settle_ticks
                self._emotions = None
                self._empathy = None
                self._memories = []
                focused = True
            elif signal.type == SignalType.EMOTION_DETECTED:
                self._emotions = dict(signal.payload)
            elif signal.type == SignalType.EMPATHIC_STATE:
                self._empathy = dict(signal.payload)
            elif signal.type == SignalType.MEMORY_RESULT:
                self._memories = [str(m) for m in signal.payload.get("items", [])]
            elif signal.type == SignalType.THOUGHT_RESPONSE:
                self.respond(signal.payload)

        self._retry_outstanding()
        if focused and self._countdown == 0:
            self.decide()
        elif not focused:
            self._settle()

    def on_idle(self) -> None:
        self._retry_outstanding()
        self._settle()

    def _retry_outstanding(self) -> None:
        for request_id, entry in list(self._outstanding.items()):
            entry.waited += 1
            if entry.waited < self.retry_ticks:
                continue
            if entry.attempts > self.max_retries:
                logger.warning("Giving up on thought %d after %d attempts", request_id, entry.attempts)
                del self._outstanding[request_id]
                continue
            entry.attempts += 1
            entry.waited = 0
            logger.debug("Re-sending thought %d (attempt %d)", request_id, entry.attempts)
            self._send(entry.payload)

    def _settle(self) -> None:
        if self._pending is None:
            return
        self._countdown -= 1
        if self._countdown <= 0:
            self.decide()
        else:
            self.debug_info = f"Settling ({self._countdown})"

    def decide(self) -> None:
        content = self._pending
        if content is None:
            return
        self._pending = None
        state = self.self_state.snapshot

        payload: Dict[str, Any] = {
            "action": "respond",
            "content": content,
            "context": list(self.context)[-5:],
            "selfState": state.as_dict(),
            "timestamp": self.clock(),
        }
        if self._empathy:
            payload["empathicState"] = {
                "mirroring": list(self._empathy.get("theirEmotions", [])),
                "coupling": float(self._empathy.get("intensity", 0.0)),
                "resonance": str(self._empathy.get("response", "")),
            }
        if self._memories:
            payload["recentMemories"] = list(self._memories)
        if self._emotions:
            payload["detectedEmotions"] = dict(self._emotions)

        request_id = next(self._request_ids)
        payload["requestId"] = request_id
        self._outstanding[request_id] = OutstandingThought(payload=payload)

        self.context.append(content)
        self.thoughts_requested += 1
        self._send(payload)
        self.debug_info = f'Thinking about: "{content[:35]}"'

    def _send(self, payload: Dict[str, Any]) -> None:
        self.emit(SignalType.THOUGHT, payload, target=[EngineId.THOUGHT_BRIDGE], priority=Priority.HIGH)

    def respond(self, payload: Mapping[str, Any]) -> None:
        request_id = payload.get("requestId")
        if request_id is not None:
            self._outstanding.pop(request_id, None)
        elif self._outstanding:
            # Untagged responses answer the oldest request
            self._outstanding.popitem(last=False)

        text = str(payload.get("text", ""))
        shift = payload.get("emotionShift")
        if shift:
            try:
                self.self_state.apply_shift(shift)
            except ValueError as exc:
                logger.warning("Ignoring emotion shift %r: %s", shift, exc)

        self.responses_received += 1
        if text:
            self.context.append(text)
            self.emit(
                SignalType.EXPRESSION,
                {"text": text, "degraded": bool(payload.get("degraded", False))},
                target=[EngineId.EXPRESSION],
                priority=Priority.HIGH,
            )
        self.debug_info = f'Replied: "{text[:35]}"'
