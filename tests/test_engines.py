import asyncio
import threading

import pytest

from engines import (
    ArbiterEngine,
    DefaultModeEngine,
    EmotionInferenceEngine,
    EmpathicCouplingEngine,
    ExpressionEngine,
    GrowthEngine,
    InMemoryMemoryStore,
    MemoryEngine,
    TextInputEngine,
    build_default_engines,
    detect_emotions,
)
from substrate import CadenceConfig, EngineId, IdleCadence, SelfState, SignalType, ThoughtStream, make_signal
from substrate.bridge import ThoughtBridge

from conftest import FakeChannel, Observer, pull_all


class FixedProvider:
    def pick(self, category):
        return f"{category} thought"

    def connector(self):
        return "Still,"


def _signal(type, payload, source=EngineId.EXTERNAL, target=None):
    return make_signal(type, source, payload, target=target)


# -- text input ----------------------------------------------------------

def test_text_input_becomes_perception_and_focus(scheduler):
    scheduler.register(TextInputEngine())
    observer = Observer(scheduler.bus, "watcher", SignalType.PERCEPTION_RESULT, SignalType.ATTENTION_FOCUS)
    scheduler.bus.emit(_signal(SignalType.TEXT_INPUT, {"text": "  hello mind  "}))

    scheduler.tick()
    scheduler.tick()

    [perception] = observer.of_type(SignalType.PERCEPTION_RESULT)
    [focus] = observer.of_type(SignalType.ATTENTION_FOCUS)
    assert perception.payload["type"] == "text"
    assert perception.payload["content"] == "hello mind"
    assert focus.payload == {"content": "hello mind", "modality": "text", "salience": 0.8}
    assert scheduler.state.target_snapshot()["social"] == pytest.approx(0.45, abs=1e-3)


def test_blank_text_is_ignored(scheduler):
    engine = scheduler.register(TextInputEngine())
    engine.step([_signal(SignalType.TEXT_INPUT, {"text": "   "})])

    assert engine.received == 0
    assert scheduler.bus.pending_count() == 0


# -- emotion inference ---------------------------------------------------

def test_detect_emotions_averages_matches():
    detection = detect_emotions("I'm so happy and grateful today")

    assert detection.emotions == ["joy", "gratitude"]
    assert detection.valence == pytest.approx(0.45)
    assert detection.confidence == pytest.approx(0.6)


def test_detect_emotions_on_neutral_text():
    detection = detect_emotions("the train leaves at noon")
    assert detection.emotions == []
    assert detection.confidence == 0.0


def test_emotion_engine_targets_downstream_engines(scheduler):
    engine = scheduler.register(EmotionInferenceEngine())
    observer = Observer(scheduler.bus, EngineId.EMPATHIC_COUPLING.value, SignalType.EMOTION_DETECTED)
    bystander = Observer(scheduler.bus, "memory", SignalType.EMOTION_DETECTED)

    engine.step([_signal(SignalType.PERCEPTION_RESULT, {"type": "text", "content": "I feel so sad"})])
    pull_all(scheduler.bus, observer, bystander)

    [detected] = observer.received
    assert detected.payload["emotions"] == ["sadness"]
    assert bystander.received == []


# -- empathic coupling ---------------------------------------------------

def test_sadness_pulls_valence_down_and_signals_compassion(scheduler):
    engine = scheduler.register(EmpathicCouplingEngine())
    arbiter = Observer(scheduler.bus, "arbiter", SignalType.EMPATHIC_STATE)

    engine.couple({"emotions": ["sadness"], "valence": -0.4, "arousal": -0.2, "confidence": 0.3})
    arbiter.pull(scheduler.bus)

    assert scheduler.state.target_snapshot()["valence"] < 0
    [empathy] = arbiter.received
    assert empathy.payload["response"] == "compassion"
    assert empathy.payload["theirEmotions"] == ["sadness"]


def test_weak_detection_is_ignored(scheduler):
    engine = scheduler.register(EmpathicCouplingEngine())
    before = scheduler.state.target_snapshot()

    engine.couple({"emotions": ["joy"], "valence": 0.4, "arousal": 0.3, "confidence": 0.1})

    assert scheduler.state.target_snapshot() == before


def test_attachment_modulates_coupling(scheduler):
    engine = scheduler.register(EmpathicCouplingEngine())
    engine.step([_signal(SignalType.PERSON_STATE_UPDATE, {"state": {"attachment": 1.0}})])
    assert engine.coupling_strength == pytest.approx(0.5)

    engine.step([_signal(SignalType.LOVE_FIELD_UPDATE, {"weight": 10.0})])
    assert engine.coupling_strength == EmpathicCouplingEngine.MAX_COUPLING


# -- memory --------------------------------------------------------------

def test_memory_store_ranks_by_overlap_then_recency():
    store = InMemoryMemoryStore()
    store.add("the cat sat on the mat")
    store.add("a cat and a dog")
    store.add("the dog barked")

    results = store.search("cat dog")
    assert [r.content for r in results] == ["a cat and a dog", "the dog barked", "the cat sat on the mat"]
    assert store.search("the and") == []


def test_memory_engine_recalls_then_remembers(scheduler):
    engine = scheduler.register(MemoryEngine())
    observer = Observer(scheduler.bus, "arbiter", SignalType.MEMORY_RESULT)

    engine.step([_signal(SignalType.ATTENTION_FOCUS, {"content": "I love the sea"})])
    assert observer.pull(scheduler.bus) == []

    engine.step([_signal(SignalType.ATTENTION_FOCUS, {"content": "the sea was cold"})])
    [result] = observer.pull(scheduler.bus)
    assert result.payload["items"] == ["I love the sea"]
    assert len(engine.store) == 2


# -- default mode --------------------------------------------------------

def _default_mode(clock, **kwargs):
    return DefaultModeEngine(
        cadence=IdleCadence(CadenceConfig(idle_threshold_ticks=2), clock=clock),
        stream=ThoughtStream(clock=clock),
        provider=FixedProvider(),
        clock=clock,
        **kwargs,
    )


def test_default_mode_wanders_after_idle_threshold(scheduler, clock):
    engine = scheduler.register(_default_mode(clock))
    observer = Observer(scheduler.bus, "imagination", SignalType.DEFAULT_MODE_THOUGHT)

    engine.step([])
    assert observer.pull(scheduler.bus) == []
    engine.step([])
    [thought] = observer.pull(scheduler.bus)

    assert thought.payload["thought"] == "musing thought"
    assert thought.payload["category"] == "musing"
    assert thought.priority.name == "IDLE"
    assert scheduler.state.target_snapshot()["curiosity"] == pytest.approx(0.52)
    assert engine.thoughts_emitted == 1


def test_attention_resets_the_idle_count(scheduler, clock):
    engine = scheduler.register(_default_mode(clock))

    engine.step([])
    engine.step([_signal(SignalType.ATTENTION_FOCUS, {"content": "hi"})])
    engine.step([])

    assert engine.thoughts_emitted == 0


def test_any_delivered_signal_resets_the_idle_count(scheduler, clock):
    engine = scheduler.register(_default_mode(clock))

    engine.step([])
    engine.step([_signal(SignalType.MEMORY_RESULT, {"items": ["the sea"]})])
    engine.step([])
    assert engine.thoughts_emitted == 0

    engine.step([])
    assert engine.thoughts_emitted == 1


def test_default_mode_keeps_an_empty_shared_stream(scheduler, clock):
    shared = ThoughtStream(freshness_seconds=1.0, clock=clock)
    cadence = CadenceConfig(idle_threshold_ticks=1, base_cooldown_seconds=1, min_cooldown_seconds=1)
    engine = scheduler.register(DefaultModeEngine(
        cadence=IdleCadence(cadence, clock=clock),
        stream=shared,
        provider=FixedProvider(),
        clock=clock,
    ))
    listener = Observer(scheduler.bus, "expression", SignalType.DEFAULT_MODE_THOUGHT)

    assert engine.stream is shared
    assert engine.composer.stream is shared

    engine.step([])
    assert len(shared) == 1

    clock.advance(5)
    engine.step([])
    first, second = listener.pull(scheduler.bus)
    assert first.payload["continuation"] is False
    assert second.payload["continuation"] is False
    assert len(shared) == 2


def test_wandering_thread_ends_after_one_continuation(scheduler, clock):
    engine = scheduler.register(DefaultModeEngine(
        cadence=IdleCadence(CadenceConfig(idle_threshold_ticks=1), clock=clock),
        stream=ThoughtStream(freshness_seconds=60, clock=clock),
        provider=FixedProvider(),
        clock=clock,
    ))
    listener = Observer(scheduler.bus, "expression", SignalType.DEFAULT_MODE_THOUGHT)

    engine.step([])
    clock.advance(25)
    engine.step([])
    scheduler.state.restore(SelfState(valence=-0.9))
    clock.advance(25)
    engine.step([])

    thoughts = listener.pull(scheduler.bus)
    assert [(t.payload["category"], t.payload["continuation"]) for t in thoughts] == [
        ("musing", False),
        ("musing", True),
        ("melancholy", False),
    ]
    assert thoughts[1].payload["thought"] == "Still, musing thought"


def test_default_mode_asks_for_reflection_when_it_has_memories(scheduler, clock):
    engine = scheduler.register(_default_mode(clock, reflection=True))
    bridge = Observer(scheduler.bus, "reflection-bridge", SignalType.REFLECTION_REQUEST)
    listener = Observer(scheduler.bus, "expression", SignalType.DEFAULT_MODE_THOUGHT)

    engine.step([_signal(SignalType.MEMORY_RESULT, {"items": ["the sea was cold"]})])
    engine.step([])
    engine.step([])
    pull_all(scheduler.bus, bridge, listener)

    [request] = bridge.received
    assert request.payload["memories"] == ["the sea was cold"]
    assert set(request.payload["mood"]) == {"valence", "arousal", "energy"}
    assert listener.received == []
    assert engine.awaiting_reflection

    engine.step([_signal(SignalType.REFLECTION_RESULT, {"thought": "Cold seas, warm talks."})])
    pull_all(scheduler.bus, bridge, listener)

    [thought] = listener.received
    assert thought.payload["thought"] == "Cold seas, warm talks."
    assert thought.payload["category"] == "reflection"
    assert not engine.awaiting_reflection


def test_empty_reflection_falls_back_to_local_thought(scheduler, clock):
    engine = scheduler.register(_default_mode(clock, reflection=True))
    listener = Observer(scheduler.bus, "expression", SignalType.DEFAULT_MODE_THOUGHT)

    engine.step([_signal(SignalType.MEMORY_RESULT, {"items": ["something"]})])
    engine.step([])
    engine.step([])
    engine.step([_signal(SignalType.REFLECTION_RESULT, {"thought": None})])
    listener.pull(scheduler.bus)

    [thought] = listener.received
    assert thought.payload["thought"] == "musing thought"


def test_reflection_timeout_falls_back(scheduler, clock):
    engine = scheduler.register(_default_mode(clock, reflection=True, reflection_timeout=10))
    listener = Observer(scheduler.bus, "expression", SignalType.DEFAULT_MODE_THOUGHT)

    engine.step([_signal(SignalType.MEMORY_RESULT, {"items": ["something"]})])
    engine.step([])
    engine.step([])
    assert engine.awaiting_reflection

    clock.advance(5)
    engine.step([])
    assert listener.pull(scheduler.bus) == []

    clock.advance(6)
    engine.step([])
    assert len(listener.pull(scheduler.bus)) == 1
    assert not engine.awaiting_reflection


# -- arbiter -------------------------------------------------------------

def test_arbiter_waits_for_signals_to_settle(scheduler):
    engine = scheduler.register(ArbiterEngine(settle_ticks=2))
    bridge = Observer(scheduler.bus, "thought-bridge", SignalType.THOUGHT)

    engine.step([_signal(SignalType.ATTENTION_FOCUS, {"content": "I feel sad"})])
    engine.step([
        _signal(SignalType.EMOTION_DETECTED, {"emotions": ["sadness"], "valence": -0.4, "arousal": -0.2, "confidence": 0.3}),
        _signal(SignalType.MEMORY_RESULT, {"items": ["rainy days"]}),
    ])
    assert bridge.pull(scheduler.bus) == []
    assert engine.pending == "I feel sad"

    engine.step([_signal(SignalType.EMPATHIC_STATE, {"response": "compassion", "intensity": 0.09, "theirEmotions": ["sadness"]})])
    [thought] = bridge.pull(scheduler.bus)

    payload = thought.payload
    assert payload["content"] == "I feel sad"
    assert payload["detectedEmotions"]["emotions"] == ["sadness"]
    assert payload["recentMemories"] == ["rainy days"]
    assert payload["empathicState"] == {"mirroring": ["sadness"], "coupling": 0.09, "resonance": "compassion"}
    assert set(payload["selfState"]) == {"valence", "arousal", "confidence", "energy", "social", "curiosity"}
    assert engine.pending is None


def test_arbiter_without_settling_thinks_immediately(scheduler):
    engine = scheduler.register(ArbiterEngine(settle_ticks=0))
    bridge = Observer(scheduler.bus, "thought-bridge", SignalType.THOUGHT)

    engine.step([_signal(SignalType.ATTENTION_FOCUS, {"content": "quick"})])

    [thought] = bridge.pull(scheduler.bus)
    assert thought.payload["content"] == "quick"
    assert "detectedEmotions" not in thought.payload


def test_arbiter_applies_shift_and_speaks(scheduler):
    engine = scheduler.register(ArbiterEngine())
    mouth = Observer(scheduler.bus, "expression", SignalType.EXPRESSION)

    engine.step([_signal(
        SignalType.THOUGHT_RESPONSE,
        {"text": "That sounds hard.", "emotionShift": {"valence": -0.2, "social": 0.1}, "seq": 1, "degraded": False},
    )])

    [said] = mouth.pull(scheduler.bus)
    assert said.payload == {"text": "That sounds hard.", "degraded": False}
    targets = scheduler.state.target_snapshot()
    assert targets["valence"] == pytest.approx(-0.2)
    assert targets["social"] == pytest.approx(0.5)


def test_arbiter_ignores_shift_with_unknown_dimension(scheduler):
    engine = scheduler.register(ArbiterEngine())
    before = scheduler.state.target_snapshot()

    engine.step([_signal(SignalType.THOUGHT_RESPONSE, {"text": "hm", "emotionShift": {"mood": 1.0}})])

    assert scheduler.state.target_snapshot() == before
    assert engine.responses_received == 1


def test_arbiter_resends_unanswered_thought_then_gives_up(scheduler):
    engine = scheduler.register(ArbiterEngine(settle_ticks=0, retry_ticks=2, max_retries=1))
    bridge = Observer(scheduler.bus, "thought-bridge", SignalType.THOUGHT)

    engine.step([_signal(SignalType.ATTENTION_FOCUS, {"content": "hello"})])
    [first] = bridge.pull(scheduler.bus)
    assert engine.outstanding == [first.payload["requestId"]]

    engine.step([])
    assert bridge.pull(scheduler.bus) == []
    engine.step([])
    [again] = bridge.pull(scheduler.bus)
    assert again.payload == first.payload

    engine.step([])
    engine.step([])
    assert bridge.pull(scheduler.bus) == []
    assert engine.outstanding == []


def test_arbiter_stops_resending_once_answered(scheduler):
    engine = scheduler.register(ArbiterEngine(settle_ticks=0, retry_ticks=2))
    bridge = Observer(scheduler.bus, "thought-bridge", SignalType.THOUGHT)

    engine.step([_signal(SignalType.ATTENTION_FOCUS, {"content": "one"})])
    engine.step([_signal(SignalType.ATTENTION_FOCUS, {"content": "two"})])
    first, second = bridge.pull(scheduler.bus)

    engine.step([_signal(SignalType.THOUGHT_RESPONSE, {"text": "Two!", "requestId": second.payload["requestId"]})])
    assert engine.outstanding == [first.payload["requestId"]]
    engine.step([_signal(SignalType.THOUGHT_RESPONSE, {"text": "One!"})])
    assert engine.outstanding == []
    bridge.pull(scheduler.bus)

    for _ in range(5):
        engine.step([])
    assert bridge.pull(scheduler.bus) == []


# -- growth --------------------------------------------------------------

def test_growth_tracks_quality_and_reports_periodically(scheduler, clock):
    engine = scheduler.register(GrowthEngine(assessment_interval=30, clock=clock))
    strategy = Observer(scheduler.bus, "strategy", SignalType.GROWTH_INSIGHT)

    engine.step([_signal(SignalType.THOUGHT_RESPONSE, {"text": "x", "degraded": True})])
    assert engine.metrics.response_quality == pytest.approx(0.48)
    assert strategy.pull(scheduler.bus) == []

    clock.advance(31)
    engine.step([_signal(SignalType.PERSPECTIVE_UPDATE, {"theyThinkOfMe": "positive and engaged"})])
    [insight] = strategy.pull(scheduler.bus)
    assert insight.payload["metrics"]["interaction_count"] == 1
    assert insight.payload["metrics"]["response_quality"] == pytest.approx(0.49)


# -- expression ----------------------------------------------------------

def test_expression_routes_to_callbacks(scheduler):
    said, thought = [], []
    engine = scheduler.register(ExpressionEngine(on_say=said.append, on_think=thought.append))

    engine.step([
        _signal(SignalType.EXPRESSION, {"text": "Hello.", "degraded": False}),
        _signal(SignalType.DEFAULT_MODE_THOUGHT, {"thought": "hmm", "category": "musing"}),
        _signal(SignalType.EXPRESSION, {"text": ""}),
    ])

    assert [u.text for u in said] == ["Hello."]
    assert [(u.text, u.category) for u in thought] == [("hmm", "musing")]
    assert [u.kind for u in engine.drain()] == ["say", "think"]
    assert engine.drain() == []


# -- the whole society ---------------------------------------------------

async def test_conversation_round_trip(scheduler):
    engines = build_default_engines()
    scheduler.register_all(*engines)
    expression = scheduler.engines[EngineId.EXPRESSION.value]
    channel = FakeChannel(text="I'm sorry you're sad.", shift={"valence": -0.1})
    bridge = ThoughtBridge(scheduler.bus, channel)

    scheduler.bus.emit(_signal(SignalType.TEXT_INPUT, {"text": "I feel sad today"}))
    for _ in range(10):
        scheduler.tick()
        await bridge.drain()

    assert len(channel.think_requests) == 1
    request = channel.think_requests[0]
    assert request.content == "I feel sad today"
    assert "sadness" in request.detectedEmotions["emotions"]
    assert request.empathicState["resonance"] == "compassion"
    assert [u.text for u in expression.outbox] == ["I'm sorry you're sad."]
    assert scheduler.engine_errors == 0


async def test_thought_dropped_by_busy_bridge_is_sent_later(scheduler):
    scheduler.register(TextInputEngine())
    arbiter = scheduler.register(ArbiterEngine(settle_ticks=0, retry_ticks=2))
    gate = threading.Event()
    channel = FakeChannel(gate=gate)
    bridge = ThoughtBridge(scheduler.bus, channel)

    scheduler.bus.emit(_signal(SignalType.TEXT_INPUT, {"text": "first"}))
    for _ in range(4):
        scheduler.tick()
        await asyncio.sleep(0)
    assert bridge.in_flight

    scheduler.bus.emit(_signal(SignalType.TEXT_INPUT, {"text": "second"}))
    for _ in range(6):
        scheduler.tick()
        await asyncio.sleep(0)
    assert bridge.dropped >= 1

    gate.set()
    for _ in range(30):
        scheduler.tick()
        await bridge.drain()

    assert [r.content for r in channel.think_requests] == ["first", "second"]
    assert arbiter.outstanding == []
    assert arbiter.responses_received == 2
