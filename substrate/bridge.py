"""Bridges to the slow, out-of-process reasoning service.

A bridge listens for a trigger signal, runs one blocking request in a
worker thread, and later injects the result back onto the bus as an
ordinary signal. The tick loop never waits on it.

Only one request is in flight per bridge. Triggers that arrive while a
request is outstanding are dropped, not queued; the sender retries. A
trigger carrying a requestId the bridge has already accepted is a retry
that crossed with the answer and is ignored.
"""

from __future__ import annotations

import asyncio
import bisect
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from clients.reasoning import (
    HistoryMessage,
    Mood,
    ReflectRequest,
    ReflectResponse,
    ThinkRequest,
    ThinkResponse,
)

from .bus import SignalBus
from .signals import EngineId, Priority, Signal, SignalType, make_signal

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "I... lost my train of thought for a moment. Could you say that again?"
FALLBACK_SHIFT = {"confidence": -0.1, "energy": -0.05}
DEFAULT_HISTORY_LIMIT = 40
ACCEPTED_ID_MEMORY = 64


class ReasoningChannel(Protocol):
    def think(self, request: ThinkRequest) -> ThinkResponse: ...

    def reflect(self, request: ReflectRequest) -> ReflectResponse: ...


@dataclass(frozen=True)
class ConversationEntry:
    role: str
    content: str
    seq: int


class ServiceBridge:
    """Single-latch bridge skeleton shared by the thought and reflection bridges."""

    trigger: SignalType

    def __init__(
        self,
        bus: SignalBus,
        channel: ReasoningChannel,
        bridge_id: str,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.bus = bus
        self.channel = channel
        self.id = bridge_id
        self._loop = loop
        self._in_flight = False
        self._task: Optional[asyncio.Task] = None
        self.requests_sent = 0
        self.dropped = 0
        self.failures = 0
        self.duplicates = 0
        self._accepted = deque(maxlen=ACCEPTED_ID_MEMORY)
        self.subscription_id = bus.subscribe(bridge_id, [self.trigger], self.handle)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def handle(self, batch: List[Signal]) -> None:
        for signal in batch:
            if signal.type == self.trigger:
                self._on_trigger(signal)

    def _on_trigger(self, signal: Signal) -> None:
        request_id = signal.payload.get("requestId")
        if request_id is not None and request_id in self._accepted:
            self.duplicates += 1
            logger.debug("%s already handled request %s", self.id, request_id)
            return
        if self._in_flight:
            self.dropped += 1
            logger.debug("%s busy, dropping %s", self.id, signal)
            return
        self._in_flight = True
        try:
            loop = self._loop or asyncio.get_running_loop()
            self._task = loop.create_task(self._run(signal))
        except Exception:
            self._in_flight = False
            raise
        if request_id is not None:
            self._accepted.append(request_id)

    async def _run(self, signal: Signal) -> None:
        try:
            self.requests_sent += 1
            await self._call(signal)
        except Exception as exc:
            self.failures += 1
            logger.warning("%s request failed: %s", self.id, exc)
            self._on_failure(signal, exc)
        finally:
            self._in_flight = False

    async def _call(self, signal: Signal) -> None:
        raise NotImplementedError

    def _on_failure(self, signal: Signal, exc: Exception) -> None:
        raise NotImplementedError

    async def drain(self) -> None:
        """Wait for the outstanding request, if any."""
        task = self._task
        if task is not None and not task.done():
            await task

    def close(self) -> None:
        self.bus.unsubscribe(self.subscription_id)

    def get_status(self) -> Dict[str, Any]:
        return {
            "in_flight": self._in_flight,
            "requests": self.requests_sent,
            "dropped": self.dropped,
            "failures": self.failures,
            "duplicates": self.duplicates,
        }


class ThoughtBridge(ServiceBridge):
    """Turns THOUGHT signals into think requests and injects THOUGHT_RESPONSE.

    Keeps a bounded conversation history. Each request gets a sequence
    number, and history entries are kept ordered by it.
    """

    trigger = SignalType.THOUGHT

    def __init__(
        self,
        bus: SignalBus,
        channel: ReasoningChannel,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        response_targets: Optional[List[str]] = None,
        bridge_id: str = EngineId.THOUGHT_BRIDGE.value,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        self.history_limit = history_limit
        self.response_targets = response_targets or [EngineId.ARBITER.value, EngineId.GROWTH.value]
        self._history: List[ConversationEntry] = []
        self._seq = itertools.count(1)
        super().__init__(bus, channel, bridge_id, loop=loop)

    @property
    def history(self) -> List[ConversationEntry]:
        return list(self._history)

    def _append(self, entry: ConversationEntry) -> None:
        bisect.insort(self._history, entry, key=lambda e: e.seq)
        if len(self._history) > self.history_limit:
            del self._history[: len(self._history) - self.history_limit]

    def build_request(self, decision: Dict[str, Any], prior: List[ConversationEntry]) -> ThinkRequest:
        return ThinkRequest(
            content=str(decision.get("content", "")),
            context=[str(c) for c in decision.get("context", [])],
            selfState=dict(decision.get("selfState") or {}),
            conversationHistory=[HistoryMessage(role=e.role, content=e.content) for e in prior],
            empathicState=decision.get("empathicState"),
            tomInference=decision.get("tomInference"),
            recentMemories=decision.get("recentMemories"),
            detectedEmotions=decision.get("detectedEmotions"),
        )

    async def _call(self, signal: Signal) -> None:
        decision = signal.payload
        seq = next(self._seq)
        self._append(ConversationEntry(role="user", content=str(decision.get("content", "")), seq=seq))
        prior = [e for e in self._history if e.seq != seq]
        request = self.build_request(decision, prior)

        logger.info("Thinking about: %s", request.content[:80])
        result = await asyncio.to_thread(self.channel.think, request)

        self._append(ConversationEntry(role="assistant", content=result.text, seq=seq))
        self._emit_response(result.text, result.emotionShift, seq, False, decision.get("requestId"))

    def _on_failure(self, signal: Signal, exc: Exception) -> None:
        self._emit_response(
            FALLBACK_TEXT,
            dict(FALLBACK_SHIFT),
            None,
            True,
            signal.payload.get("requestId"),
        )

    def _emit_response(
        self,
        text: str,
        shift: Optional[Dict[str, float]],
        seq: Optional[int],
        degraded: bool,
        request_id: Any = None,
    ) -> None:
        payload: Dict[str, Any] = {"text": text, "seq": seq, "degraded": degraded}
        if shift:
            payload["emotionShift"] = shift
        if request_id is not None:
            payload["requestId"] = request_id
        self.bus.emit(make_signal(
            SignalType.THOUGHT_RESPONSE,
            self.id,
            payload,
            target=self.response_targets,
            priority=Priority.HIGH,
        ))

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status["history"] = len(self._history)
        return status


class ReflectionBridge(ServiceBridge):
    """Turns REFLECTION_REQUEST into a reflect call.

    Always answers with REFLECTION_RESULT; `thought` is None when the
    service failed or had nothing to say, so the requester can fall back.
    """

    trigger = SignalType.REFLECTION_REQUEST

    def __init__(
        self,
        bus: SignalBus,
        channel: ReasoningChannel,
        bridge_id: str = EngineId.REFLECTION_BRIDGE.value,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        super().__init__(bus, channel, bridge_id, loop=loop)

    async def _call(self, signal: Signal) -> None:
        payload = signal.payload
        mood = payload.get("mood") or {}
        request = ReflectRequest(
            memories=[str(m) for m in payload.get("memories", [])][:5],
            mood=Mood(
                valence=mood.get("valence", 0.0),
                arousal=mood.get("arousal", 0.0),
                energy=mood.get("energy", 0.0),
            ),
            recentStream=payload.get("recentStream"),
        )
        result = await asyncio.to_thread(self.channel.reflect, request)
        thought = result.thought.strip()
        self._reply(signal, thought or None)

    def _on_failure(self, signal: Signal, exc: Exception) -> None:
        self._reply(signal, None)

    def _reply(self, request: Signal, thought: Optional[str]) -> None:
        self.bus.emit(make_signal(
            SignalType.REFLECTION_RESULT,
            self.id,
            {"thought": thought},
            target=request.source,
            priority=Priority.LOW,
        ))
