"""
Resize policies for fixed-size resizing.
Uses the strategy pattern: the extend/upsize option pair selects one policy.
"""
import math
from typing import Protocol, Optional, Sequence
from loguru import logger

from pixel_alchemy import config
from pixel_alchemy.raster import RasterHandle


class ResizePolicy(Protocol):
    """Resize policy interface"""

    def apply(
        self,
        image: RasterHandle,
        width: Optional[int],
        height: Optional[int],
        background: Sequence[int]
    ) -> RasterHandle:
        """
        Bring the image to the target box.

        Args:
            image: raster handle, modified in place
            width: target width in pixels
            height: target height in pixels
            background: RGBA colour for any padding

        Returns:
            RasterHandle: the same handle
        """
        ...


class ContainPolicy:
    """extend + upsize: scale to fit (enlarging if needed) and pad to the exact box"""

    def apply(self, image, width, height, background):
        return image.resize(width, height, fit='contain', background=background)


class InsidePolicy:
    """upsize only: scale to fit inside the box, enlarging if needed, no padding"""

    def apply(self, image, width, height, background):
        return image.resize(width, height, fit='inside')


class ExtendPolicy:
    """
    extend only: never enlarge.
    A source already within the box is centred on a padded canvas without
    resampling; a larger one is scaled down to fit and padded.
    """

    def apply(self, image, width, height, background):
        src_w, src_h = image.size
        if width and height and src_w <= width and src_h <= height:
            diff_w = width - src_w
            diff_h = height - src_h
            logger.debug(f"[Resize] Padding {src_w}x{src_h} to {width}x{height} without resampling")
            return image.extend(
                top=diff_h // 2,
                bottom=math.ceil(diff_h / 2),
                left=diff_w // 2,
                right=math.ceil(diff_w / 2),
                background=background,
            )
        return image.resize(width, height, fit='contain', background=background)


class ShrinkInsidePolicy:
    """default: scale down to fit inside the box, never enlarge"""

    def apply(self, image, width, height, background):
        return image.resize(width, height, fit='inside', without_enlargement=True)


def get_resize_policy(extend: bool = False, upsize: bool = False) -> ResizePolicy:
    """Pick the policy for an extend/upsize option pair"""
    if upsize and extend:
        return ContainPolicy()
    if upsize:
        return InsidePolicy()
    if extend:
        return ExtendPolicy()
    return ShrinkInsidePolicy()


def background_for(fmt: Optional[str]):
    """Padding colour: opaque white for formats without alpha, transparent white otherwise"""
    if config.canonical_format(fmt) in config.FLATTEN_FORMATS:
        return config.WHITE
    return config.TRANSPARENT_WHITE
