from __future__ import annotations

"""
Image input: decode, validate, read orientation, downscale.

Everything that can go wrong with the *input* is caught here and raised
as InvalidImageError, before any recognizer is scheduled.
"""

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

from loguru import logger
from PIL import Image, UnidentifiedImageError

from . import config
from .errors import InvalidImageError
from .orientation import Orientation, from_exif, normalize

_EXIF_ORIENTATION_TAG = 0x0112

ImageSource = Union[bytes, bytearray, str, Path, Image.Image]


@dataclass(frozen=True)
class ImageInput:
    """Decoded RGB bitmap plus the orientation recognizers should apply."""

    image: Image.Image
    orientation: Orientation = Orientation.UP

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size


def fit_within(size: Tuple[int, int], max_dimension: int) -> Tuple[int, int]:
    """Aspect-preserving size whose longest side is <= max_dimension."""
    width, height = size
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width > height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


def _open(source: ImageSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    if isinstance(source, (bytes, bytearray)):
        if not source:
            raise InvalidImageError("empty image payload")
        return Image.open(io.BytesIO(bytes(source)))
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.is_file():
            raise InvalidImageError(f"image file not found: {path}")
        return Image.open(path)
    raise InvalidImageError(f"unsupported image source: {type(source).__name__}")


def _exif_orientation(img: Image.Image) -> Orientation:
    try:
        value = img.getexif().get(_EXIF_ORIENTATION_TAG)
    except Exception as e:
        logger.debug("Could not read EXIF orientation: {}", e)
        return Orientation.UP
    return from_exif(value)


def load_image(
    source: ImageSource,
    orientation: Optional[Any] = None,
    max_dimension: Optional[int] = None,
) -> ImageInput:
    """
    Decode ``source`` into an ImageInput.

    When ``orientation`` is None the EXIF tag is used; otherwise it is run
    through orientation.normalize (camera/UI convention).
    """
    if max_dimension is None:
        max_dimension = config.MAX_IMAGE_DIMENSION

    try:
        img = _open(source)
        img.load()
    except InvalidImageError:
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise InvalidImageError(f"could not decode image: {e}") from e

    if img.width <= 0 or img.height <= 0:
        raise InvalidImageError(f"image has no pixels: {img.size}")

    canonical = _exif_orientation(img) if orientation is None else normalize(orientation)

    if img.mode != "RGB":
        img = img.convert("RGB")

    target = fit_within(img.size, max_dimension)
    if target != img.size:
        logger.debug("Downscaling image {} -> {}", img.size, target)
        img = img.resize(target, Image.Resampling.BILINEAR)

    return ImageInput(image=img, orientation=canonical)
