from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
EVAL_LABELS_PATH = DATA_DIR / "labelled_photos.csv"

MODELS_DIR = PROJECT_ROOT / "models"  # for HF cache if you want to mount it


# ---------------------------
# Model names (pinned)
# ---------------------------

# Object detector (YOLO-family, COCO labels)
OBJECT_DETECTION_MODEL = os.getenv("OBJECT_DETECTION_MODEL", "hustvl/yolos-tiny")

# Generic image classifier (MobileNetV2, ImageNet labels)
IMAGE_CLASSIFICATION_MODEL = os.getenv(
    "IMAGE_CLASSIFICATION_MODEL", "google/mobilenet_v2_1.0_224"
)

# Hub-hosted weights, keyed by the recognizer that uses them
HF_MODEL_REPOS: Dict[str, str] = {
    "object_detection": OBJECT_DETECTION_MODEL,
    "classification": IMAGE_CLASSIFICATION_MODEL,
}

# Text recognizer languages (easyocr)
OCR_LANGUAGES: List[str] = [
    lang.strip() for lang in os.getenv("OCR_LANGUAGES", "en").split(",") if lang.strip()
]

# Detector boxes below this score are ignored by the pipeline itself
DETECTION_THRESHOLD = 0.5

# Classifier labels kept per image; mirrors the "top 10 pool" of the app
CLASSIFIER_TOP_K = 10

# HF cache / offline mode (we don't set env vars here; just define names)
HF_ENV_VARS = {
    "HF_HUB_ENABLE_HF_TRANSFER": "1",
    "HF_HOME": str(MODELS_DIR),
    # HF_HUB_OFFLINE to be optionally set to "1" by the runtime after first pull
}


# ---------------------------
# Scheduling
# ---------------------------

DEFAULT_RECOGNIZER_TIMEOUT_S = 10.0
RECOGNIZER_TIMEOUT_S = float(
    os.getenv("RECOGNIZER_TIMEOUT_S", str(DEFAULT_RECOGNIZER_TIMEOUT_S))
)


# ---------------------------
# Image input
# ---------------------------

MAX_IMAGE_DIMENSION = int(os.getenv("MAX_IMAGE_DIMENSION", "800"))


# ---------------------------
# Fusion / selection policy
# ---------------------------

MIN_TEXT_LENGTH = 5          # shorter OCR strings are noise (prices, sizes, "SALE")
VALIDATION_TOP_K = 10        # OCR is checked against this many visual labels
MAX_TAGS = 5
DEFAULT_ITEM_NAME = "New Item"

# OCR strings containing any of these never become a name
TEXT_DENYLIST: Tuple[str, ...] = (
    "not found",
    "no item",
)


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class SelectionSettings(BaseModel):
    """
    Knobs for the cross-validation & selection step.
    Defaults come from the module constants above.
    """

    model_config = ConfigDict(frozen=True)

    min_text_length: int = Field(default=MIN_TEXT_LENGTH, ge=0)
    denylist: Tuple[str, ...] = TEXT_DENYLIST
    validation_top_k: int = Field(default=VALIDATION_TOP_K, ge=0)
    max_tags: int = Field(default=MAX_TAGS, ge=0, le=MAX_TAGS)
    default_name: str = DEFAULT_ITEM_NAME


class ClassificationResult(BaseModel):
    """
    Final (name, tags) pair handed to the caller.
    Tags are unique case-insensitively and ordered by descending confidence.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    tags: Tuple[str, ...] = Field(default=(), max_length=MAX_TAGS)

    @field_validator("tags")
    @classmethod
    def _tags_unique_ci(cls, tags: Tuple[str, ...]) -> Tuple[str, ...]:
        seen = set()
        for t in tags:
            key = t.casefold()
            if key in seen:
                raise ValueError(f"duplicate tag (case-insensitive): {t!r}")
            seen.add(key)
        return tags
