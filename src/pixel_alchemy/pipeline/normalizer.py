"""
Transform normalization.

Resolves interacting transform parameters into a CanonicalTransforms value
against the source metadata. Pure: the caller's params (and the dicts nested
in them) are only ever read.

Rules, in order:
1. Flip collapse - a horizontal plus vertical flip is a 180 degree rotation.
2. Sideways swap - for a 90/270 rotation the resize width/height and the two
   flip flags trade places, so they describe the post-rotation image.
3. Crop resolution - proportional crops become pixel rectangles measured on
   the original (pre-rotation) dimensions; invalid crops are dropped.
"""
import math
from typing import Optional, Tuple
from loguru import logger

from pixel_alchemy.pipeline.request import (
    TransformParams,
    SourceMetadata,
    CanonicalTransforms,
    CropRect,
    ResizeSize,
    Levels,
)

VALID_ROTATIONS = (0, 90, 180, 270)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _resolve_rotation(value) -> int:
    angle = _number(value)
    if angle is None:
        return 0
    if angle == int(angle):
        angle = int(angle) % 360
    if angle not in VALID_ROTATIONS:
        logger.warning(f"[Normalize] Unsupported rotation {value!r}, using 0")
        return 0
    return angle


def _dimension(value) -> Optional[int]:
    # 0 and missing both mean "not given"
    number = _number(value)
    if not number or number < 0:
        return None
    return int(round(number))


def _resolve_resize(resize) -> Optional[Tuple[Optional[int], Optional[int]]]:
    if not resize:
        return None
    width = _dimension(resize.get('width'))
    height = _dimension(resize.get('height'))
    if width is None and height is None:
        logger.debug(f"[Normalize] Dropping empty resize {resize!r}")
        return None
    return width, height


def is_valid_crop(crop) -> bool:
    """Bounds check on a proportional crop rectangle"""
    try:
        x = float(crop['x'])
        y = float(crop['y'])
        width = float(crop['width'])
        height = float(crop['height'])
    except (KeyError, TypeError, ValueError):
        return False

    return (
        # Validate height
        height > 0 and
        height + y <= 1 and
        # Validate width
        width > 0 and
        width + x <= 1 and
        # Validate x, y
        0 <= x <= 1 and
        0 <= y <= 1
    )


def resolve_crop(crop, metadata: SourceMetadata) -> Optional[CropRect]:
    """Convert a proportional crop to pixels, or None when it is invalid or empty"""
    if not crop:
        return None

    if not is_valid_crop(crop) or not metadata.width or not metadata.height:
        logger.debug(f"[Normalize] Dropping invalid crop {crop!r}")
        return None

    left = round_half_up(metadata.width * float(crop['x']))
    top = round_half_up(metadata.height * float(crop['y']))
    # Rounding can push the far edge one pixel past the image
    width = min(round_half_up(metadata.width * float(crop['width'])), metadata.width - left)
    height = min(round_half_up(metadata.height * float(crop['height'])), metadata.height - top)

    if width <= 0 or height <= 0:
        logger.debug(f"[Normalize] Dropping degenerate crop {crop!r} on {metadata.width}x{metadata.height}")
        return None

    return CropRect(left=left, top=top, width=width, height=height)


def _resolve_levels(levels) -> Optional[Levels]:
    if not levels:
        return None
    return Levels(
        r=_number(levels.get('r')) or 0.0,
        g=_number(levels.get('g')) or 0.0,
        b=_number(levels.get('b')) or 0.0,
    )


def normalize(params: TransformParams, metadata: SourceMetadata) -> CanonicalTransforms:
    """
    Build the canonical transform set for one invocation.

    Args:
        params: caller supplied transform parameters (not modified)
        metadata: source image metadata, read once per invocation

    Returns:
        CanonicalTransforms: a new value; nothing in it references params
    """
    params = params or {}

    rotate = _resolve_rotation(params.get('rotate'))
    flip_horizontal = bool(params.get('flip_horizontal'))
    flip_vertical = bool(params.get('flip_vertical'))

    # 1. Flip collapse
    if flip_horizontal and flip_vertical:
        rotate = (rotate + 180) % 360
        flip_horizontal = False
        flip_vertical = False

    # 2. Sideways swap
    resize = _resolve_resize(params.get('resize'))
    is_sideways = rotate in (90, 270)
    if is_sideways:
        if resize is not None:
            resize = (resize[1], resize[0])
        flip_horizontal, flip_vertical = flip_vertical, flip_horizontal

    # 3. Crop resolution (original, pre-rotation metadata)
    crop = resolve_crop(params.get('crop'), metadata)

    canonical = CanonicalTransforms(
        crop=crop,
        resize=ResizeSize(width=resize[0], height=resize[1]) if resize else None,
        levels=_resolve_levels(params.get('levels')),
        flip_horizontal=flip_horizontal,
        flip_vertical=flip_vertical,
        rotate=rotate,
        sharpen=_number(params.get('sharpen')),
        brightness=_number(params.get('brightness')),
        contrast=_number(params.get('contrast')),
        gamma=_number(params.get('gamma')),
        invert=bool(params.get('invert')),
    )
    logger.debug(f"[Normalize] {canonical}")
    return canonical
