"""Typed containers shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple


class SignalKind(str, Enum):
    """Which recognizer family produced a candidate."""

    OBJECT_DETECTION = "object_detection"
    CLASSIFICATION = "classification"
    TEXT_RECOGNITION = "text_recognition"

    @property
    def is_visual(self) -> bool:
        return self is not SignalKind.TEXT_RECOGNITION


# Fixed kind order used wherever output must not depend on completion order
KIND_ORDER: Tuple[SignalKind, ...] = (
    SignalKind.OBJECT_DETECTION,
    SignalKind.CLASSIFICATION,
    SignalKind.TEXT_RECOGNITION,
)


@dataclass(frozen=True)
class ScoredCandidate:
    """
    One candidate string plus where it came from.

    Visual candidates carry a confidence in [0, 1]. Text candidates are
    unscored: ``confidence`` is None, never a magic number.
    """

    text: str
    source: SignalKind
    confidence: Optional[float] = None

    def __post_init__(self) -> None:
        if self.source.is_visual:
            if self.confidence is None:
                raise ValueError(f"visual candidate {self.text!r} needs a confidence")
            clamped = min(max(float(self.confidence), 0.0), 1.0)
            object.__setattr__(self, "confidence", clamped)
        elif self.confidence is not None:
            raise ValueError(f"text candidate {self.text!r} must be unscored")

    @classmethod
    def visual(cls, text: str, confidence: float, source: SignalKind) -> "ScoredCandidate":
        return cls(text=text, source=source, confidence=confidence)

    @classmethod
    def textual(cls, text: str) -> "ScoredCandidate":
        return cls(text=text, source=SignalKind.TEXT_RECOGNITION)


@dataclass(frozen=True)
class RecognitionOutcome:
    """Result of one recognizer invocation: candidates or a failure reason."""

    recognizer: str
    kind: SignalKind
    candidates: Tuple[ScoredCandidate, ...] = ()
    error: Optional[str] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls,
        recognizer: str,
        kind: SignalKind,
        candidates: Sequence[ScoredCandidate],
        elapsed_ms: int = 0,
    ) -> "RecognitionOutcome":
        return cls(recognizer=recognizer, kind=kind, candidates=tuple(candidates), elapsed_ms=elapsed_ms)

    @classmethod
    def failure(
        cls,
        recognizer: str,
        kind: SignalKind,
        error: str,
        elapsed_ms: int = 0,
    ) -> "RecognitionOutcome":
        return cls(recognizer=recognizer, kind=kind, error=error or "unknown error", elapsed_ms=elapsed_ms)


@dataclass(frozen=True)
class AggregatedSignals:
    """All successful candidates of one request, partitioned by kind."""

    detections: Tuple[ScoredCandidate, ...] = ()
    classifications: Tuple[ScoredCandidate, ...] = ()
    texts: Tuple[ScoredCandidate, ...] = ()
    # recognizer name -> failure reason; diagnostics only
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def visual(self) -> Tuple[ScoredCandidate, ...]:
        return self.detections + self.classifications

    @property
    def is_empty(self) -> bool:
        return not (self.detections or self.classifications or self.texts)
