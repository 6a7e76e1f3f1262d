"""Error taxonomy for the classification pipeline.

Only InvalidImageError and AllRecognizersFailedError ever reach a caller of
``VisionService.classify``; the rest are contained at the recognizer
boundary and turned into "no signal".
"""

from __future__ import annotations

from typing import Dict, Optional


class VisionFusionError(Exception):
    """Base class for every error raised by this package."""


class InvalidImageError(VisionFusionError, ValueError):
    """The input could not be decoded into a processable image."""


class RecognizerUnavailableError(VisionFusionError):
    """A recognizer failed to initialise (missing package or model asset)."""


class RecognitionFailedError(VisionFusionError):
    """A single recognizer call failed (bad input, inference error, bad output)."""


class RequestCancelledError(VisionFusionError):
    """The request was cancelled while a recognizer was running."""


class AllRecognizersFailedError(VisionFusionError):
    """No recognizer was available, or every launched recognizer failed."""

    def __init__(self, failures: Optional[Dict[str, str]] = None):
        self.failures: Dict[str, str] = dict(failures or {})
        if self.failures:
            detail = "; ".join(f"{k}: {v}" for k, v in sorted(self.failures.items()))
            msg = f"all recognizers failed ({detail})"
        else:
            msg = "no recognizer available"
        super().__init__(msg)
