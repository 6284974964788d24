import copy
from dataclasses import dataclass, field
from typing import TypedDict, Optional

from pixel_alchemy.file_io import Source


class CropParams(TypedDict):
    """Proportional crop rectangle, every value in [0, 1]"""
    x: float
    y: float
    width: float
    height: float


class ResizeParams(TypedDict, total=False):
    """Target size in absolute pixels; either side may be left out"""
    width: Optional[int]
    height: Optional[int]


class LevelsParams(TypedDict, total=False):
    """Per-channel level adjustment, each in [-1, 1]"""
    r: float
    g: float
    b: float


class TransformParams(TypedDict, total=False):
    """Type definition for transform parameters"""
    # Geometry
    crop: CropParams
    resize: ResizeParams
    rotate: int  # 0, 90, 180, 270
    flip_horizontal: bool
    flip_vertical: bool

    # Tone & Color (-1...1)
    levels: LevelsParams
    sharpen: float  # negative = blur
    brightness: float
    contrast: float
    gamma: float
    invert: bool


@dataclass(frozen=True)
class SourceMetadata:
    """Pixel dimensions and detected container format of a source image"""
    width: Optional[int]
    height: Optional[int]
    format: str


@dataclass(frozen=True)
class CropRect:
    """Absolute crop rectangle in source pixels"""
    left: int
    top: int
    width: int
    height: int


@dataclass(frozen=True)
class ResizeSize:
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class Levels:
    r: float = 0.0
    g: float = 0.0
    b: float = 0.0

    @property
    def is_identity(self) -> bool:
        return self.r == 0 and self.g == 0 and self.b == 0


@dataclass(frozen=True)
class CanonicalTransforms:
    """
    Normalized, unambiguous transform set.
    - crop is in absolute pixels (None when absent or invalid)
    - resize is already axis-swapped for sideways rotations
    - flips are never both set (a double flip is a 180 rotation)
    - rotate is always present so orientation metadata is always stripped
    """
    crop: Optional[CropRect] = None
    resize: Optional[ResizeSize] = None
    levels: Optional[Levels] = None
    flip_horizontal: bool = False
    flip_vertical: bool = False
    rotate: int = 0
    sharpen: Optional[float] = None
    brightness: Optional[float] = None
    contrast: Optional[float] = None
    gamma: Optional[float] = None
    invert: bool = False

    @property
    def is_identity(self) -> bool:
        """True when nothing but the mandatory orientation strip would run"""
        return (
            self.crop is None
            and self.resize is None
            and (self.levels is None or self.levels.is_identity)
            and not self.flip_horizontal
            and not self.flip_vertical
            and self.rotate == 0
            and not self.sharpen
            and not self.brightness
            and not self.contrast
            and not self.gamma
            and not self.invert
        )


@dataclass
class TransformRequest:
    """Immutable transform request. The caller's params are never shared."""
    source: Source
    format: Optional[str] = None
    params: TransformParams = field(default_factory=dict)
    request_id: Optional[str] = None

    def __post_init__(self):
        # Deep copy: nested crop/resize/levels dicts belong to the caller
        self.params = copy.deepcopy(dict(self.params or {}))
