"""
Orientation handling.

Images arrive tagged with the orientation convention of whatever produced
them (camera/UI layer: up, down, left, right and their mirrored forms,
numbered 0..7).  Recognizers work on the EXIF convention (1..8), and the
pixel backends we use expect upright pixels, so ``apply_orientation``
performs the actual transpose.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, Optional

from PIL import Image


class Orientation(IntEnum):
    """Canonical orientation, numbered as the EXIF Orientation tag."""

    UP = 1
    UP_MIRRORED = 2
    DOWN = 3
    DOWN_MIRRORED = 4
    LEFT_MIRRORED = 5
    RIGHT = 6
    RIGHT_MIRRORED = 7
    LEFT = 8


class SourceOrientation(IntEnum):
    """Orientation as stored by the capture / photo-library layer."""

    UP = 0
    DOWN = 1
    LEFT = 2
    RIGHT = 3
    UP_MIRRORED = 4
    DOWN_MIRRORED = 5
    LEFT_MIRRORED = 6
    RIGHT_MIRRORED = 7


_SOURCE_TO_CANONICAL: Dict[SourceOrientation, Orientation] = {
    SourceOrientation.UP: Orientation.UP,
    SourceOrientation.DOWN: Orientation.DOWN,
    SourceOrientation.LEFT: Orientation.LEFT,
    SourceOrientation.RIGHT: Orientation.RIGHT,
    SourceOrientation.UP_MIRRORED: Orientation.UP_MIRRORED,
    SourceOrientation.DOWN_MIRRORED: Orientation.DOWN_MIRRORED,
    SourceOrientation.LEFT_MIRRORED: Orientation.LEFT_MIRRORED,
    SourceOrientation.RIGHT_MIRRORED: Orientation.RIGHT_MIRRORED,
}

# Same table ImageOps.exif_transpose uses
_TRANSPOSE: Dict[Orientation, Optional[Image.Transpose]] = {
    Orientation.UP: None,
    Orientation.UP_MIRRORED: Image.Transpose.FLIP_LEFT_RIGHT,
    Orientation.DOWN: Image.Transpose.ROTATE_180,
    Orientation.DOWN_MIRRORED: Image.Transpose.FLIP_TOP_BOTTOM,
    Orientation.LEFT_MIRRORED: Image.Transpose.TRANSPOSE,
    Orientation.RIGHT: Image.Transpose.ROTATE_270,
    Orientation.RIGHT_MIRRORED: Image.Transpose.TRANSVERSE,
    Orientation.LEFT: Image.Transpose.ROTATE_90,
}


def normalize(stored: Any) -> Orientation:
    """
    Map a stored orientation onto the canonical one.

    Accepts a SourceOrientation, its int value or its name; an Orientation
    passes through untouched. Anything unrecognised is treated as UP.
    """
    if isinstance(stored, Orientation):
        return stored
    if isinstance(stored, SourceOrientation):
        return _SOURCE_TO_CANONICAL[stored]
    if isinstance(stored, bool):
        return Orientation.UP
    if isinstance(stored, int):
        try:
            return _SOURCE_TO_CANONICAL[SourceOrientation(stored)]
        except ValueError:
            return Orientation.UP
    if isinstance(stored, str):
        key = stored.strip().upper().replace("-", "_").replace(" ", "_")
        member = SourceOrientation.__members__.get(key)
        if member is not None:
            return _SOURCE_TO_CANONICAL[member]
    return Orientation.UP


def from_exif(value: Any) -> Orientation:
    """EXIF Orientation tag value -> Orientation (UP when missing or bogus)."""
    try:
        return Orientation(int(value))
    except (TypeError, ValueError):
        return Orientation.UP


def apply_orientation(image: Image.Image, orientation: Orientation) -> Image.Image:
    """Return the pixels rotated/mirrored upright."""
    method = _TRANSPOSE.get(orientation)
    if method is None:
        return image
    return image.transpose(method)
