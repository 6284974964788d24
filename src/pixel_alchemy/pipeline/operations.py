"""
Pipeline operations.

Maps the normalized -1...1 / 0...1 user parameters onto the numeric domain
of the raster primitives, and describes the pipeline as an ordered list of
tagged operations built once per invocation from CanonicalTransforms.

Order of operations is very important here. Some primitives are not
commutative with others, so build_operations() must keep this sequence:

    crop, resize, rotate, flip horizontal, flip vertical, sharpen/blur,
    levels, brightness, contrast, invert, gamma

Rotate is always present (angle 0 included) because the rotate primitive is
what discards embedded EXIF orientation.
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple, Protocol

from pixel_alchemy.pipeline.request import CanonicalTransforms, CropRect, Levels as LevelValues

GAMMA_RANGE = 2.0


# =========================================================
# Numeric mappings
# =========================================================

def clamp(value: float, min_value: float, max_value: float) -> float:
    """Return value limited to [min_value, max_value]"""
    return max(min_value, min(max_value, value))


def brightness_factor(brightness: float) -> float:
    """-1...1 -> multiplicative brightness factor, 0.1...10"""
    brightness = clamp(brightness, -1, 1)
    if brightness > 0:
        return 1 + brightness * 9
    return (10 - (1 + abs(brightness) * 9)) / 10


def contrast_slope(contrast: float) -> float:
    """-1...1 -> slope of output = slope * input, 0...4"""
    contrast = clamp(contrast, -1, 1)
    if contrast >= 0:
        return 1 + contrast * 3
    return 1 + contrast


def gamma_value(gamma: float) -> float:
    """-1...1 -> effective gamma, 1...3"""
    return 1 + (1 + clamp(gamma, -1, 1)) / 2 * GAMMA_RANGE


def level_factor(value: float) -> float:
    """-1...1 -> per-channel multiplier, 0...6"""
    value = clamp(value, -1, 1)
    if value < 0:
        return 1 + value
    return 1 + value * 5


def level_factors(levels: LevelValues) -> Tuple[float, float, float]:
    # Order must match RGB channel order!
    return level_factor(levels.r), level_factor(levels.g), level_factor(levels.b)


def level_matrix(levels: LevelValues) -> List[List[float]]:
    """Diagonal colour-recombination matrix scaling R, G and B independently"""
    r, g, b = level_factors(levels)
    return [
        [r, 0.0, 0.0],
        [0.0, g, 0.0],
        [0.0, 0.0, b],
    ]


@dataclass(frozen=True)
class SharpenSettings:
    """Either a sharpen (sigma/flat/jagged) or a blur (radius)"""
    blur: bool
    sigma: float = 1.0
    flat: float = 0.0
    jagged: float = 0.0
    radius: float = 0.0


def sharpen_settings(sharpness: float) -> SharpenSettings:
    """-1...1 -> positive sharpens (levels up to 20), zero/negative blurs (radius 0.3...5.3)"""
    sharpness = clamp(sharpness, -1, 1)
    if sharpness > 0:
        factor = sharpness * 20
        return SharpenSettings(blur=False, sigma=1.0, flat=factor, jagged=factor)
    return SharpenSettings(blur=True, radius=0.3 + abs(sharpness) * 5)


# =========================================================
# Operations
# =========================================================

class RasterOps(Protocol):
    """The subset of RasterHandle the operations drive"""

    def crop_rect(self, left: int, top: int, width: int, height: int): ...
    def resize(self, width: Optional[int] = None, height: Optional[int] = None, fit: str = 'fill', **kwargs): ...
    def rotate(self, angle: Optional[int] = None): ...
    def flip_h(self): ...
    def flip_v(self): ...
    def sharpen(self, sigma: float = 1.0, flat: float = 1.0, jagged: float = 2.0): ...
    def blur(self, sigma: float): ...
    def color_recombine(self, matrix): ...
    def scale_channels(self, factors): ...
    def modulate_brightness(self, factor: float): ...
    def linear(self, slope: float, intercept: float = 0.0): ...
    def invert(self): ...
    def gamma(self, value: float): ...


@dataclass(frozen=True)
class Crop:
    rect: CropRect
    name = 'crop'

    def apply(self, image: RasterOps):
        image.crop_rect(self.rect.left, self.rect.top, self.rect.width, self.rect.height)


@dataclass(frozen=True)
class Resize:
    width: Optional[int]
    height: Optional[int]
    name = 'resize'

    @property
    def fit(self) -> str:
        # One side only: keep aspect. Both sides: force the exact size.
        return 'contain' if not self.width or not self.height else 'fill'

    def apply(self, image: RasterOps):
        image.resize(self.width, self.height, fit=self.fit)


@dataclass(frozen=True)
class Rotate:
    angle: int = 0
    name = 'rotate'

    def apply(self, image: RasterOps):
        image.rotate(self.angle)


@dataclass(frozen=True)
class FlipHorizontal:
    name = 'flip_horizontal'

    def apply(self, image: RasterOps):
        image.flip_h()


@dataclass(frozen=True)
class FlipVertical:
    name = 'flip_vertical'

    def apply(self, image: RasterOps):
        image.flip_v()


@dataclass(frozen=True)
class Sharpen:
    amount: float
    name = 'sharpen'

    def apply(self, image: RasterOps):
        settings = sharpen_settings(self.amount)
        if settings.blur:
            image.blur(settings.radius)
        else:
            image.sharpen(settings.sigma, settings.flat, settings.jagged)


@dataclass(frozen=True)
class Levels:
    levels: LevelValues
    mode: str = 'matrix'
    name = 'levels'

    def apply(self, image: RasterOps):
        if self.levels.is_identity:
            return
        if self.mode == 'raw':
            image.scale_channels(level_factors(self.levels))
        else:
            image.color_recombine(level_matrix(self.levels))


@dataclass(frozen=True)
class Brightness:
    value: float
    name = 'brightness'

    def apply(self, image: RasterOps):
        image.modulate_brightness(brightness_factor(self.value))


@dataclass(frozen=True)
class Contrast:
    value: float
    name = 'contrast'

    def apply(self, image: RasterOps):
        image.linear(contrast_slope(self.value), 0)


@dataclass(frozen=True)
class Invert:
    name = 'invert'

    def apply(self, image: RasterOps):
        image.invert()


@dataclass(frozen=True)
class Gamma:
    value: float
    name = 'gamma'

    def apply(self, image: RasterOps):
        image.gamma(gamma_value(self.value))


def build_operations(canonical: CanonicalTransforms, levels_mode: str = 'matrix') -> list:
    """
    Build the ordered operation list for one invocation.
    Zero-valued adjustments are left out entirely; rotate never is.
    """
    ops = []

    if canonical.crop is not None:
        ops.append(Crop(canonical.crop))

    if canonical.resize is not None and (canonical.resize.width or canonical.resize.height):
        ops.append(Resize(canonical.resize.width, canonical.resize.height))

    # Always rotate, even by 0: this is what strips EXIF orientation
    ops.append(Rotate(canonical.rotate or 0))

    if canonical.flip_horizontal:
        ops.append(FlipHorizontal())
    if canonical.flip_vertical:
        ops.append(FlipVertical())

    if canonical.sharpen:
        ops.append(Sharpen(canonical.sharpen))

    if canonical.levels is not None and not canonical.levels.is_identity:
        ops.append(Levels(canonical.levels, levels_mode))

    if canonical.brightness:
        ops.append(Brightness(canonical.brightness))
    if canonical.contrast:
        ops.append(Contrast(canonical.contrast))
    if canonical.invert:
        ops.append(Invert())
    if canonical.gamma:
        ops.append(Gamma(canonical.gamma))

    return ops
