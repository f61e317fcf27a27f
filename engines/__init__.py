from typing import Callable, List, Optional

from substrate.autonomy import ContentProvider, IdleCadence, ThoughtStream
from substrate.engine import Engine

from .text_input import TextInputEngine
from .emotion_inference import EmotionInferenceEngine, EmotionDetection, detect_emotions
from .empathic_coupling import EmpathicCouplingEngine
from .memory import MemoryEngine, InMemoryMemoryStore, MemoryRecord
from .default_mode import DefaultModeEngine
from .growth import GrowthEngine
from .arbiter import ArbiterEngine
from .expression import ExpressionEngine, Utterance


def build_default_engines(
    on_say: Optional[Callable[[Utterance], None]] = None,
    on_think: Optional[Callable[[Utterance], None]] = None,
    cadence: Optional[IdleCadence] = None,
    stream: Optional[ThoughtStream] = None,
    provider: Optional[ContentProvider] = None,
    reflection: bool = False,
) -> List[Engine]:
    """The standard society, in registration order."""
    return [
        TextInputEngine(),
        EmotionInferenceEngine(),
        EmpathicCouplingEngine(),
        MemoryEngine(),
        DefaultModeEngine(cadence=cadence, stream=stream, provider=provider, reflection=reflection),
        GrowthEngine(),
        ArbiterEngine(),
        ExpressionEngine(on_say=on_say, on_think=on_think),
    ]


__all__ = [
    "TextInputEngine",
    "EmotionInferenceEngine",
    "EmotionDetection",
    "detect_emotions",
    "EmpathicCouplingEngine",
    "MemoryEngine",
    "InMemoryMemoryStore",
    "MemoryRecord",
    "DefaultModeEngine",
    "GrowthEngine",
    "ArbiterEngine",
    "ExpressionEngine",
    "Utterance",
    "build_default_engines",
]
