"""
Raster backend.

RasterHandle wraps a decoded Pillow image together with what has to survive
until encoding: the EXIF block, the ICC profile, the selected output format
and its save options. Every primitive the transform pipeline needs is a
method here; the pipeline itself never touches Pillow directly.
"""
import io
import re
from typing import Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageChops, ImageFilter, ImageOps, UnidentifiedImageError
from loguru import logger

from pixel_alchemy import config, file_io, math_ops
from pixel_alchemy.errors import MetadataReadError, RasterOperationError, UnsupportedFormatError
from pixel_alchemy.pipeline.request import SourceMetadata

ORIENTATION_TAG = 0x0112

# EXIF orientation value -> transpose that makes the pixels upright
EXIF_TRANSPOSE = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}

# Clockwise angle -> Pillow transpose (Pillow's ROTATE_* are counter-clockwise)
CLOCKWISE_TRANSPOSE = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}

FIT_MODES = ('contain', 'fill', 'cover', 'inside')

DEFAULT_BACKGROUND = (0, 0, 0, 255)

_SVG_ROOT = re.compile(rb'<svg\b[^>]*>', re.IGNORECASE | re.DOTALL)
_SVG_LENGTH = r'\s{}\s*=\s*["\']\s*([0-9]*\.?[0-9]+)\s*(px)?\s*["\']'


def _format_name(pil_format: Optional[str]) -> str:
    fmt = (pil_format or '').lower()
    # Multi-picture JPEGs straight from cameras
    if fmt == 'mpo':
        return 'jpeg'
    return config.canonical_format(fmt) or ''


def is_svg(head: bytes) -> bool:
    """Sniff an SVG document from the first bytes of a source"""
    text = head.lstrip(b'\xef\xbb\xbf').lstrip().lower()
    if not text.startswith((b'<?xml', b'<svg', b'<!doctype', b'<!--')):
        return False
    return b'<svg' in text


def _svg_dimensions(data: bytes) -> Tuple[Optional[int], Optional[int]]:
    match = _SVG_ROOT.search(data)
    if not match:
        return None, None
    root = match.group(0).decode('utf-8', 'replace')

    dims = []
    for attr in ('width', 'height'):
        found = re.search(_SVG_LENGTH.format(attr), root, re.IGNORECASE)
        dims.append(int(round(float(found.group(1)))) if found else None)
    return dims[0], dims[1]


def read_metadata(source: file_io.Source) -> SourceMetadata:
    """
    Read width, height and container format without decoding pixels.

    Raises:
        MetadataReadError: when the source is missing, corrupt or unidentifiable
    """
    try:
        with Image.open(file_io.as_file(source)) as image:
            return SourceMetadata(width=image.width, height=image.height, format=_format_name(image.format))
    except (UnidentifiedImageError, OSError, ValueError) as e:
        try:
            head = file_io.read_source_head(source, 4096)
        except OSError:
            head = b''
        if is_svg(head):
            width, height = _svg_dimensions(head)
            return SourceMetadata(width=width, height=height, format='svg')
        raise MetadataReadError(f"Cannot read image metadata: {e}") from e


def _working_mode(image: Image.Image) -> Image.Image:
    """Bring any decoded mode to RGB or RGBA"""
    if image.mode in ('RGB', 'RGBA'):
        return image
    has_alpha = (
        image.mode in ('LA', 'PA', 'RGBa', 'La')
        or (image.mode == 'P' and 'transparency' in image.info)
    )
    return image.convert('RGBA' if has_alpha else 'RGB')


class RasterHandle:
    """
    One decoded image plus its pending output state.

    Orientation primitives (rotate, flip_h, flip_v) are deferred and applied
    in a fixed internal order, flips first and rotation second, right before
    the next pixel operation or the final encode. Call order between them
    does not matter.
    """

    def __init__(
        self,
        image: Image.Image,
        source_format: str = '',
        exif: Optional[Image.Exif] = None,
        icc_profile: Optional[bytes] = None,
    ):
        self.image = _working_mode(image)
        self.source_format = source_format
        self.exif = exif if exif is not None else Image.Exif()
        self.icc_profile = icc_profile

        self.output_format: Optional[str] = None  # Pillow format name
        self.save_options: dict = {}
        self.background: Optional[Tuple[int, ...]] = None  # flatten colour

        self._flip_h = False
        self._flip_v = False
        self._rotation = 0

    @classmethod
    def open(cls, source: file_io.Source) -> 'RasterHandle':
        """
        Decode a source image.

        Raises:
            UnsupportedFormatError: for formats Pillow cannot rasterize (SVG)
            MetadataReadError: for missing or corrupt sources
        """
        try:
            image = Image.open(file_io.as_file(source))
            image.load()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            try:
                head = file_io.read_source_head(source)
            except OSError:
                head = b''
            if is_svg(head):
                raise UnsupportedFormatError("SVG sources can only be passed through, not rasterized") from e
            raise MetadataReadError(f"Cannot decode image: {e}") from e

        source_format = _format_name(image.format)
        exif = image.getexif()
        icc_profile = image.info.get('icc_profile')
        logger.debug(f"[Raster] Opened {source_format} {image.width}x{image.height} mode={image.mode}")
        return cls(image, source_format, exif, icc_profile)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def size(self) -> Tuple[int, int]:
        """Current (width, height), pending orientation included"""
        width, height = self.image.size
        if self._rotation in (90, 270):
            return height, width
        return width, height

    @property
    def channels(self) -> int:
        return len(self.image.getbands())

    @property
    def has_alpha(self) -> bool:
        return self.image.mode == 'RGBA'

    @property
    def orientation(self) -> Optional[int]:
        return self.exif.get(ORIENTATION_TAG)

    # ------------------------------------------------------------------
    # Output configuration
    # ------------------------------------------------------------------

    def select_output_format(self, fmt: str, **options) -> 'RasterHandle':
        """Configure the target encoding before any pixel operation runs"""
        name = config.FORMAT_ALIASES.get(str(fmt).lower(), str(fmt).upper())
        Image.init()
        if name not in Image.SAVE:
            raise UnsupportedFormatError(f"Unsupported output format: {fmt}")
        self.output_format = name
        self.save_options = dict(options)
        return self

    def flatten_background(self, color: Sequence[int] = config.WHITE) -> 'RasterHandle':
        """
        Composite transparency onto an opaque colour right away, so every
        later pixel operation sees the flattened background.
        """
        self.background = tuple(color)
        self._composite_background()
        return self

    def _composite_background(self):
        if self.image.mode != 'RGBA':
            return
        flat = Image.new('RGB', self.image.size, self.background[:3])
        flat.paste(self.image, mask=self.image.getchannel('A'))
        self.image = flat

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def crop_rect(self, left: int, top: int, width: int, height: int) -> 'RasterHandle':
        self._apply_orientation()
        img_w, img_h = self.image.size
        if (
            width <= 0 or height <= 0 or left < 0 or top < 0
            or left + width > img_w or top + height > img_h
        ):
            raise RasterOperationError(
                f"Bad extract area: {left},{top} {width}x{height} on {img_w}x{img_h}"
            )
        self.image = self.image.crop((left, top, left + width, top + height))
        return self

    def resize(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
        fit: str = 'fill',
        background: Optional[Sequence[int]] = None,
        without_enlargement: bool = False,
    ) -> 'RasterHandle':
        """
        Resize with one of the fit modes:
            contain - keep aspect, fit inside the box, pad with background
            fill    - stretch to the exact box
            cover   - keep aspect, fill the box, crop the overflow (centred)
            inside  - keep aspect, fit inside the box, no padding
        With a single dimension the other is derived from the aspect ratio.
        """
        if fit not in FIT_MODES:
            raise RasterOperationError(f"Unknown fit mode: {fit}")
        if not width and not height:
            return self

        self._apply_orientation()
        src_w, src_h = self.image.size
        if not width:
            width = max(1, int(round(src_w * height / src_h)))
        if not height:
            height = max(1, int(round(src_h * width / src_w)))

        if fit == 'inside':
            scale = min(width / src_w, height / src_h)
            if without_enlargement:
                scale = min(scale, 1.0)
            target = (max(1, int(round(src_w * scale))), max(1, int(round(src_h * scale))))
            if target != (src_w, src_h):
                self.image = self.image.resize(target, Image.Resampling.LANCZOS)
            return self

        if without_enlargement and src_w <= width and src_h <= height:
            return self

        if fit == 'fill':
            self.image = self.image.resize((width, height), Image.Resampling.LANCZOS)
        elif fit == 'cover':
            self.image = ImageOps.fit(self.image, (width, height), Image.Resampling.LANCZOS)
        else:
            color = self._prepare_background(background or DEFAULT_BACKGROUND)
            self.image = ImageOps.pad(self.image, (width, height), Image.Resampling.LANCZOS, color=color)
        return self

    def extend(self, top: int, bottom: int, left: int, right: int,
               background: Sequence[int] = DEFAULT_BACKGROUND) -> 'RasterHandle':
        """Pad the image edges with a background colour"""
        self._apply_orientation()
        color = self._prepare_background(background)
        img_w, img_h = self.image.size
        canvas = Image.new(self.image.mode, (img_w + left + right, img_h + top + bottom), color)
        canvas.paste(self.image, (left, top))
        self.image = canvas
        return self

    def trim(self, threshold: int = 10) -> 'RasterHandle':
        """Cut away borders matching the top-left pixel colour"""
        self._apply_orientation()
        reference = Image.new(self.image.mode, self.image.size, self.image.getpixel((0, 0)))
        diff = np.asarray(ImageChops.difference(self.image, reference))
        mask = diff.max(axis=2) > threshold
        rows = np.flatnonzero(mask.any(axis=1))
        cols = np.flatnonzero(mask.any(axis=0))
        if rows.size == 0 or cols.size == 0:
            logger.debug("[Raster] Trim found a uniform image, leaving it as is")
            return self
        self.image = self.image.crop((int(cols[0]), int(rows[0]), int(cols[-1]) + 1, int(rows[-1]) + 1))
        return self

    # ------------------------------------------------------------------
    # Orientation
    # ------------------------------------------------------------------

    def rotate(self, angle: Optional[int] = None) -> 'RasterHandle':
        """
        Rotate clockwise by a multiple of 90 degrees. Without an angle the
        image is auto-oriented from its EXIF orientation instead. Either way
        the EXIF orientation tag is discarded, angle 0 included.
        """
        if angle is None:
            self._apply_orientation()
            transpose = EXIF_TRANSPOSE.get(self.orientation)
            if transpose is not None:
                self.image = self.image.transpose(transpose)
        else:
            angle = int(angle) % 360
            if angle % 90:
                raise RasterOperationError(f"Rotation must be a multiple of 90, got {angle}")
            self._rotation = (self._rotation + angle) % 360

        if ORIENTATION_TAG in self.exif:
            del self.exif[ORIENTATION_TAG]
        return self

    def flip_h(self) -> 'RasterHandle':
        """Mirror left-right"""
        self._flip_h = not self._flip_h
        return self

    def flip_v(self) -> 'RasterHandle':
        """Mirror top-bottom"""
        self._flip_v = not self._flip_v
        return self

    def _apply_orientation(self):
        if self._flip_h:
            self.image = self.image.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        if self._flip_v:
            self.image = self.image.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
        if self._rotation:
            self.image = self.image.transpose(CLOCKWISE_TRANSPOSE[self._rotation])
        self._flip_h = False
        self._flip_v = False
        self._rotation = 0

    # ------------------------------------------------------------------
    # Pixel operations
    # ------------------------------------------------------------------

    def sharpen(self, sigma: float = 1.0, flat: float = 1.0, jagged: float = 2.0) -> 'RasterHandle':
        """Unsharp mask; flat/jagged are the sharpening levels of smooth and detailed areas"""
        percent = max(1, int(round(12.5 * (flat + jagged))))
        unsharp = ImageFilter.UnsharpMask(radius=sigma, percent=percent, threshold=0)
        self._apply_to_color(lambda rgb: rgb.filter(unsharp))
        return self

    def blur(self, sigma: float) -> 'RasterHandle':
        self._apply_orientation()
        self.image = self.image.filter(ImageFilter.GaussianBlur(radius=sigma))
        return self

    def color_recombine(self, matrix) -> 'RasterHandle':
        """Multiply RGB by a 3x3 matrix; alpha is untouched"""
        self._apply_array(lambda arr: math_ops.apply_matrix(arr, matrix))
        return self

    def scale_channels(self, factors: Sequence[float]) -> 'RasterHandle':
        """Raw per-byte channel scaling, saturating at 255. Images with alpha pass through."""
        if self.channels != 3:
            logger.debug(f"[Raster] Channel scaling skipped for {self.channels}-channel image")
            return self
        self._apply_array(lambda arr: math_ops.scale_channels_saturating(arr, factors))
        return self

    def modulate_brightness(self, factor: float) -> 'RasterHandle':
        """Multiply HSL lightness; hue and saturation are kept"""
        self._apply_array(lambda arr: math_ops.scale_lightness(arr, factor))
        return self

    def linear(self, slope: float, intercept: float = 0.0) -> 'RasterHandle':
        self._apply_array(lambda arr: math_ops.apply_linear(arr, slope, intercept))
        return self

    def invert(self) -> 'RasterHandle':
        self._apply_to_color(ImageOps.invert)
        return self

    def gamma(self, value: float) -> 'RasterHandle':
        self._apply_array(lambda arr: math_ops.apply_gamma(arr, value))
        return self

    def _apply_to_color(self, fn):
        """Run a Pillow RGB operation, carrying the alpha band over unchanged"""
        self._apply_orientation()
        if self.image.mode == 'RGBA':
            alpha = self.image.getchannel('A')
            result = fn(self.image.convert('RGB'))
            result.putalpha(alpha)
            self.image = result
        else:
            self.image = fn(self.image)

    def _apply_array(self, fn):
        self._apply_orientation()
        arr = np.asarray(self.image, dtype=np.uint8)
        self.image = Image.fromarray(np.ascontiguousarray(fn(arr)))

    def _prepare_background(self, color: Sequence[int]) -> Tuple[int, ...]:
        """Match a background colour to the image mode (adds alpha when needed)"""
        color = tuple(int(c) for c in color)
        if len(color) == 3:
            color = color + (255,)
        if color[3] < 255 and self.image.mode != 'RGBA':
            self.image = self.image.convert('RGBA')
        return color if self.image.mode == 'RGBA' else color[:3]

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode(self) -> bytes:
        """Apply pending state and encode to the selected (or source) format"""
        self._apply_orientation()

        fmt = self.output_format
        if fmt is None:
            fmt = config.FORMAT_ALIASES.get(self.source_format)
        if fmt is None:
            raise UnsupportedFormatError(f"No output format selected for {self.source_format or 'unknown'} source")

        # Padding added after the flatten can bring transparency back
        if self.background is not None:
            self._composite_background()
        image = self.image
        if fmt == 'JPEG' and image.mode != 'RGB':
            image = image.convert('RGB')

        kwargs = dict(self.save_options)
        if len(self.exif) and fmt in config.EXIF_FORMATS:
            kwargs['exif'] = self.exif.tobytes()
        if self.icc_profile and fmt in config.ICC_FORMATS:
            kwargs['icc_profile'] = self.icc_profile

        buffer = io.BytesIO()
        image.save(buffer, format=fmt, **kwargs)
        data = buffer.getvalue()
        logger.debug(f"[Raster] Encoded {fmt} {image.width}x{image.height}, {len(data)} bytes")
        return data
