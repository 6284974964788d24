"""
Public entry points.

transform() runs the full adjustment pipeline; resample(), crop() and
resize() are the fixed-purpose conversions built from the same primitives.
Every function writes to dest when one is given and returns the encoded
bytes otherwise (see TransformResult).
"""
import os
from typing import Optional, Sequence, Union

from PIL import Image
from loguru import logger

from pixel_alchemy import config, raster
from pixel_alchemy.file_io import Source, TransformResult, sink_for
from pixel_alchemy.pipeline.processor import PipelineExecutor, apply_output_format
from pixel_alchemy.pipeline.request import TransformParams, TransformRequest
from pixel_alchemy.pipeline.resize_policy import get_resize_policy, background_for

Destination = Optional[Union[str, os.PathLike]]


def transform(
    src: Source,
    format: Optional[str] = None,
    transforms: Optional[TransformParams] = None,
    dest: Destination = None,
    levels_mode: Optional[str] = None,
) -> TransformResult:
    """
    Apply crop, resize, rotation, flips and tone adjustments in one pass.

    Args:
        src: source path or encoded bytes
        format: output format; the source format is kept when empty
        transforms: transform parameters (never modified)
        dest: output path; bytes are returned when empty
        levels_mode: 'matrix' (default) or 'raw' levels implementation
    """
    request = TransformRequest(src, format, transforms or {})
    return PipelineExecutor(levels_mode).run(request, sink_for(dest))


def resample(src: Source, dest: Destination = None, format: Optional[str] = None) -> TransformResult:
    """Re-encode an image, auto-oriented from its EXIF data. SVG/GIF are copied when not converted."""
    sink = sink_for(dest)
    metadata = raster.read_metadata(src)
    source_format = metadata.format

    if source_format in config.PASSTHROUGH_FORMATS:
        if not format or config.canonical_format(format) == source_format:
            return sink.copy_from(src, source_format)

    image = raster.RasterHandle.open(src)
    fmt = apply_output_format(image, format, source_format)
    image.rotate()
    return sink.write(image.encode(), fmt)


def size(src: Source) -> dict:
    """Pixel dimensions of a source image"""
    metadata = raster.read_metadata(src)
    return {'width': metadata.width, 'height': metadata.height}


def crop(
    src: Source,
    dest: Destination,
    destsize: Sequence[int],
    format: Optional[str] = None,
    trim: bool = False,
) -> TransformResult:
    """
    Produce an image of exactly destsize (width, height): scale to cover the
    box, centre-crop the overflow, then optionally trim uniform borders.
    """
    sink = sink_for(dest)
    metadata = raster.read_metadata(src)

    image = raster.RasterHandle.open(src)
    fmt = apply_output_format(image, format, metadata.format)
    image.rotate()

    width, height = destsize[0], destsize[1]
    image.resize(width, height, fit='cover')
    if trim:
        image.trim()

    return sink.write(image.encode(), fmt)


def resize(
    src: Source,
    dest: Destination,
    destsize: Sequence,
    format: Optional[str] = None,
) -> TransformResult:
    """
    Fit an image into destsize (width, height[, options]).

    options:
        extend - pad to the exact size with a background colour
        upsize - allow enlarging beyond the original size
    SVG sources are copied unchanged unless extend is requested.
    """
    options = {}
    if len(destsize) >= 3 and destsize[2]:
        options = destsize[2]

    sink = sink_for(dest)
    metadata = raster.read_metadata(src)
    source_format = metadata.format

    if source_format == 'svg' and (not format or config.canonical_format(format) == 'svg'):
        if not options.get('extend'):
            return sink.copy_from(src, source_format)

    image = raster.RasterHandle.open(src)
    fmt = apply_output_format(image, format, source_format)
    image.rotate()

    policy = get_resize_policy(extend=bool(options.get('extend')), upsize=bool(options.get('upsize')))
    logger.debug(f"[Resize] {policy.__class__.__name__} -> {destsize[0]}x{destsize[1]}")
    policy.apply(image, destsize[0], destsize[1], background_for(fmt))

    return sink.write(image.encode(), fmt)


def init():
    """Self-check: encode a small semi-transparent canvas. Raises on a broken backend."""
    canvas = Image.new('RGBA', (100, 100), (255, 255, 255, 128))
    image = raster.RasterHandle(canvas, 'png')
    image.select_output_format('png')
    image.encode()
    logger.debug("[Init] Raster backend ready")


def driver():
    """The raster library module backing this package"""
    return Image
