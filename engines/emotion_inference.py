"""Keyword-based emotion detection.

Runs locally on every text perception, no service call. The lexicon is
deliberately crude; it only has to be fast and good enough to steer the
empathic coupling before the reasoning service answers.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import FrozenSet, List, Pattern, Sequence, Tuple

from substrate.engine import Engine
from substrate.signals import EngineId, Priority, Signal, SignalType

# (pattern, emotion, valence, arousal)
EmotionPattern = Tuple[Pattern[str], str, float, float]

EMOTION_PATTERNS: Sequence[EmotionPattern] = (
    (re.compile(r"\b(happy|joy|glad|wonderful|great|amazing|love|excited)\b", re.I), "joy", 0.4, 0.3),
    (re.compile(r"\b(sad|unhappy|depressed|down|miserable|cry|crying)\b", re.I), "sadness", -0.4, -0.2),
    (re.compile(r"\b(angry|furious|mad|hate|rage|pissed)\b", re.I), "anger", -0.3, 0.5),
    (re.compile(r"\b(afraid|scared|fear|terrified|anxious|worried|nervous)\b", re.I), "fear", -0.3, 0.4),
    (re.compile(r"\b(surprised|shock|wow|whoa|unexpected)\b", re.I), "surprise", 0.1, 0.4),
    (re.compile(r"\b(disgusted|gross|eww|nasty|awful)\b", re.I), "disgust", -0.3, 0.2),
    (re.compile(r"\b(grateful|thank|appreciate|blessed)\b", re.I), "gratitude", 0.5, 0.1),
    (re.compile(r"\b(lonely|alone|isolated|abandoned)\b", re.I), "loneliness", -0.4, -0.1),
    (re.compile(r"\b(curious|wonder|interesting|fascinated)\b", re.I), "curiosity", 0.2, 0.2),
    (re.compile(r"\b(calm|peaceful|serene|relaxed|chill)\b", re.I), "calm", 0.3, -0.3),
    (re.compile(r"\b(confused|lost|don't understand|what)\b", re.I), "confusion", -0.1, 0.1),
    (re.compile(r"\b(hope|hopeful|optimistic|looking forward)\b", re.I), "hope", 0.3, 0.1),
)


@dataclass
class EmotionDetection:
    emotions: List[str] = field(default_factory=list)
    valence: float = 0.0
    arousal: float = 0.0
    confidence: float = 0.0


def detect_emotions(text: str, patterns: Sequence[EmotionPattern] = EMOTION_PATTERNS) -> EmotionDetection:
    detected: List[str] = []
    total_valence = 0.0
    total_arousal = 0.0
    for pattern, emotion, valence, arousal in patterns:
        if pattern.search(text):
            detected.append(emotion)
            total_valence += valence
            total_arousal += arousal

    count = len(detected) or 1
    return EmotionDetection(
        emotions=detected,
        valence=total_valence / count,
        arousal=total_arousal / count,
        confidence=min(1.0, len(detected) * 0.3),
    )


class EmotionInferenceEngine(Engine):
    def __init__(self, patterns: Sequence[EmotionPattern] = EMOTION_PATTERNS):
        super().__init__(EngineId.EMOTION_INFERENCE)
        self.patterns = patterns

    def subscribes_to(self) -> FrozenSet[SignalType]:
        return frozenset({SignalType.PERCEPTION_RESULT, SignalType.ATTENTION_FOCUS})

    def process(self, signals: List[Signal]) -> None:
        for signal in signals:
            if signal.type != SignalType.PERCEPTION_RESULT:
                continue
            if signal.payload.get("type") != "text":
                continue

            detection = detect_emotions(str(signal.payload.get("content", "")), self.patterns)
            if detection.emotions:
                self.emit(
                    SignalType.EMOTION_DETECTED,
                    asdict(detection),
                    target=[EngineId.PERSON_STATE, EngineId.EMPATHIC_COUPLING, EngineId.ARBITER],
                    priority=Priority.MEDIUM,
                )
                self.debug_info = f"Detected: {', '.join(detection.emotions)} (v:{detection.valence:.2f})"
            else:
                self.debug_info = "No strong emotion detected"
