# vision_fusion/recognizers.py
from __future__ import annotations

"""
Recognizer adapters.

Each adapter wraps one external capability behind the same small
contract:

* ``load()``     - once, at startup. Failure marks the adapter unavailable
                   (logged once, never retried).
* ``detect()``   - blocking model call on one image. Visual recognizers
                   return ``[{"label": str, "confidence": float}, ...]``,
                   the text recognizer returns ``[str, ...]``.
* ``run()``      - what the scheduler calls: detect + conversion into
                   ScoredCandidate, with cancellation checks around it.

Loaded model handles are read-only after ``load()`` and are shared by
every request.
"""

import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
from loguru import logger
from PIL import Image

from . import config
from .errors import RecognitionFailedError, RecognizerUnavailableError
from .imaging import ImageInput
from .normalize import clean_label
from .orientation import Orientation, apply_orientation
from .pipeline_types import ScoredCandidate, SignalKind

# Optional third-party backends. Missing ones make the adapter unavailable.
try:
    from transformers import pipeline as hf_pipeline  # type: ignore
except Exception as e:
    hf_pipeline = None
    _transformers_err = e

try:
    import easyocr  # type: ignore
except Exception as e:
    easyocr = None
    _easyocr_err = e


def _ensure_hf_env() -> None:
    """Set HF cache env vars unless the user already did."""
    for key, val in config.HF_ENV_VARS.items():
        if key not in os.environ:
            os.environ[key] = val


# ---------------------------------------------------------------------------
# Base contract
# ---------------------------------------------------------------------------


class Recognizer(ABC):
    kind: SignalKind = SignalKind.CLASSIFICATION
    default_name: str = "recognizer"

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.default_name
        self.unavailable_reason: Optional[str] = None
        self._available = False
        self._loaded = False
        self._load_lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self._available

    def load(self) -> bool:
        """Initialise the backend once. Returns availability."""
        with self._load_lock:
            if self._loaded:
                return self._available
            self._loaded = True
            try:
                self._load()
            except Exception as e:
                self.unavailable_reason = str(e) or type(e).__name__
                self._available = False
                logger.warning("Recognizer '{}' unavailable: {}", self.name, self.unavailable_reason)
                return False
            self._available = True
            logger.info("Recognizer '{}' ready", self.name)
            return True

    @abstractmethod
    def _load(self) -> None:
        ...

    @abstractmethod
    def detect(self, image: Image.Image, orientation: Orientation) -> List[Any]:
        ...

    def run(self, image_input: ImageInput, token=None) -> List[ScoredCandidate]:
        if not self._available:
            raise RecognizerUnavailableError(self.unavailable_reason or f"{self.name} not loaded")
        if token is not None:
            token.raise_if_cancelled()
        raw = self.detect(image_input.image, image_input.orientation)
        if token is not None:
            token.raise_if_cancelled()
        return self.to_candidates(raw)

    def to_candidates(self, raw: Any) -> List[ScoredCandidate]:
        if raw is None:
            return []
        if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
            raise RecognitionFailedError(
                f"{self.name}: expected a list, got {type(raw).__name__}"
            )
        if self.kind.is_visual:
            return _visual_candidates(raw, self.kind, self.name)
        return _text_candidates(raw, self.name)


def _label_and_score(entry: Any, recognizer: str) -> tuple:
    if isinstance(entry, Mapping):
        label = entry.get("label")
        score = entry.get("confidence", entry.get("score"))
    elif isinstance(entry, (tuple, list)) and len(entry) == 2:
        label, score = entry
    else:
        raise RecognitionFailedError(f"{recognizer}: malformed entry {entry!r}")
    try:
        score = float(score)
    except (TypeError, ValueError) as e:
        raise RecognitionFailedError(f"{recognizer}: bad confidence in {entry!r}") from e
    if np.isnan(score):
        raise RecognitionFailedError(f"{recognizer}: NaN confidence in {entry!r}")
    return label, score


def _visual_candidates(raw: Sequence[Any], kind: SignalKind, recognizer: str) -> List[ScoredCandidate]:
    out: List[ScoredCandidate] = []
    for entry in raw:
        label, score = _label_and_score(entry, recognizer)
        text = clean_label(label)
        if not text:
            continue
        out.append(ScoredCandidate.visual(text, score, kind))
    return out


def _text_candidates(raw: Sequence[Any], recognizer: str) -> List[ScoredCandidate]:
    out: List[ScoredCandidate] = []
    for entry in raw:
        if not isinstance(entry, str):
            raise RecognitionFailedError(f"{recognizer}: expected text, got {entry!r}")
        # full length: the longest line wins the name
        text = clean_label(entry, max_chars=None)
        if text:
            out.append(ScoredCandidate.textual(text))
    return out


# ---------------------------------------------------------------------------
# Concrete adapters
# ---------------------------------------------------------------------------


class ObjectDetector(Recognizer):
    """YOLO-style detector via the transformers object-detection pipeline."""

    kind = SignalKind.OBJECT_DETECTION
    default_name = "object_detector"

    def __init__(
        self,
        model_name: str = config.OBJECT_DETECTION_MODEL,
        threshold: float = config.DETECTION_THRESHOLD,
        name: Optional[str] = None,
    ):
        super().__init__(name)
        self.model_name = model_name
        self.threshold = threshold
        self._pipe = None

    def _load(self) -> None:
        if hf_pipeline is None:
            raise RecognizerUnavailableError(f"transformers not available: {_transformers_err}")
        _ensure_hf_env()
        logger.info("Loading object detector: {}", self.model_name)
        self._pipe = hf_pipeline("object-detection", model=self.model_name, device=-1)

    def detect(self, image: Image.Image, orientation: Orientation) -> List[Dict[str, Any]]:
        upright = apply_orientation(image, orientation)
        try:
            boxes = self._pipe(upright, threshold=self.threshold)
        except Exception as e:
            raise RecognitionFailedError(f"{self.name}: inference failed: {e}") from e
        return [{"label": b.get("label"), "confidence": b.get("score")} for b in boxes or []]


class ImageClassifier(Recognizer):
    """MobileNet-style classifier via the transformers image-classification pipeline."""

    kind = SignalKind.CLASSIFICATION
    default_name = "image_classifier"

    def __init__(
        self,
        model_name: str = config.IMAGE_CLASSIFICATION_MODEL,
        top_k: int = config.CLASSIFIER_TOP_K,
        name: Optional[str] = None,
    ):
        super().__init__(name)
        self.model_name = model_name
        self.top_k = top_k
        self._pipe = None

    def _load(self) -> None:
        if hf_pipeline is None:
            raise RecognizerUnavailableError(f"transformers not available: {_transformers_err}")
        _ensure_hf_env()
        logger.info("Loading image classifier: {}", self.model_name)
        self._pipe = hf_pipeline("image-classification", model=self.model_name, device=-1)

    def detect(self, image: Image.Image, orientation: Orientation) -> List[Dict[str, Any]]:
        upright = apply_orientation(image, orientation)
        try:
            preds = self._pipe(upright, top_k=self.top_k)
        except Exception as e:
            raise RecognitionFailedError(f"{self.name}: inference failed: {e}") from e
        return [{"label": p.get("label"), "confidence": p.get("score")} for p in preds or []]


class TextRecognizer(Recognizer):
    """OCR via easyocr; returns recognised lines in reading order."""

    kind = SignalKind.TEXT_RECOGNITION
    default_name = "text_recognizer"

    def __init__(self, languages: Optional[List[str]] = None, name: Optional[str] = None):
        super().__init__(name)
        self.languages = list(languages or config.OCR_LANGUAGES)
        self._reader = None

    def _load(self) -> None:
        if easyocr is None:
            raise RecognizerUnavailableError(f"easyocr not available: {_easyocr_err}")
        logger.info("Loading text recognizer: easyocr {}", self.languages)
        self._reader = easyocr.Reader(self.languages, gpu=False, verbose=False)

    def detect(self, image: Image.Image, orientation: Orientation) -> List[str]:
        upright = apply_orientation(image, orientation)
        try:
            lines = self._reader.readtext(np.asarray(upright), detail=0)
        except Exception as e:
            raise RecognitionFailedError(f"{self.name}: inference failed: {e}") from e
        return [str(t) for t in lines or []]


class StaticRecognizer(Recognizer):
    """
    Returns a fixed output for every image. Used for dry runs of the
    pipeline without model weights.
    """

    def __init__(self, kind: SignalKind, output: Sequence[Any], name: Optional[str] = None):
        self.kind = kind
        self.default_name = f"static_{kind.value}"
        super().__init__(name)
        self._output = list(output)

    def _load(self) -> None:
        return None

    def detect(self, image: Image.Image, orientation: Orientation) -> List[Any]:
        return list(self._output)


def default_recognizers() -> List[Recognizer]:
    """Detector, classifier, OCR - in the order their candidates tie-break."""
    return [ObjectDetector(), ImageClassifier(), TextRecognizer()]
