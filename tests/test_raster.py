"""Tests for the Pillow-backed raster handle."""

from __future__ import annotations

import pytest
from PIL import Image

from conftest import decode
from pixel_alchemy import config
from pixel_alchemy.errors import MetadataReadError, RasterOperationError, UnsupportedFormatError
from pixel_alchemy.raster import ORIENTATION_TAG, RasterHandle, is_svg, read_metadata


def handle(size=(80, 60), color=(200, 100, 50), mode="RGB", fmt="png") -> RasterHandle:
    image = RasterHandle(Image.new(mode, size, color), fmt)
    image.select_output_format(fmt)
    return image


def test_read_metadata(make_image, svg_file) -> None:
    png = read_metadata(make_image(size=(30, 20)))
    jpeg = read_metadata(make_image("photo.jpg", size=(16, 8)).read_bytes())
    svg = read_metadata(svg_file)

    assert (png.width, png.height, png.format) == (30, 20, "png")
    assert (jpeg.width, jpeg.height, jpeg.format) == (16, 8, "jpeg")
    assert (svg.width, svg.height, svg.format) == (120, 80, "svg")


def test_read_metadata_rejects_garbage() -> None:
    with pytest.raises(MetadataReadError):
        read_metadata(b"\x00\x01\x02 garbage")


def test_svg_sniffing() -> None:
    assert is_svg(b'<svg xmlns="http://www.w3.org/2000/svg"></svg>')
    assert is_svg(b'\xef\xbb\xbf<?xml version="1.0"?><svg></svg>')
    assert not is_svg(b"<html><body></body></html>")
    assert not is_svg(b"\x89PNG\r\n")


def test_open_svg_is_unsupported(svg_file) -> None:
    with pytest.raises(UnsupportedFormatError):
        RasterHandle.open(svg_file)


def test_unknown_output_format() -> None:
    with pytest.raises(UnsupportedFormatError):
        handle().select_output_format("nope")


def test_crop_rect() -> None:
    image = handle().crop_rect(10, 5, 30, 20)

    assert image.size == (30, 20)
    with pytest.raises(RasterOperationError):
        image.crop_rect(10, 0, 30, 20)
    with pytest.raises(RasterOperationError):
        image.crop_rect(0, 0, 0, 5)


def test_auto_orient_from_exif(make_image) -> None:
    path = make_image("photo.jpg", size=(40, 20), exif={ORIENTATION_TAG: 6})
    image = RasterHandle.open(path)

    assert image.orientation == 6
    image.rotate()

    assert image.size == (20, 40)
    assert image.orientation is None


def test_explicit_rotation_is_deferred_and_strips_orientation(make_image) -> None:
    path = make_image("photo.jpg", size=(40, 20), exif={ORIENTATION_TAG: 3})
    image = RasterHandle.open(path)

    image.rotate(90)

    assert image.image.size == (40, 20)
    assert image.size == (20, 40)
    assert image.orientation is None
    assert decode(image.encode()).size == (20, 40)


def test_rotation_must_be_right_angle() -> None:
    with pytest.raises(RasterOperationError):
        handle().rotate(45)


def test_resize_fits() -> None:
    assert handle().resize(40, 40, fit="contain").size == (40, 40)
    assert handle().resize(40, 40, fit="cover").size == (40, 40)
    assert handle().resize(40, 40, fit="inside").size == (40, 30)
    assert handle().resize(40, 40, fit="fill").size == (40, 40)
    assert handle().resize(None, 30, fit="contain").size == (40, 30)
    assert handle().resize(200, 200, fit="inside", without_enlargement=True).size == (80, 60)
    assert handle().resize(200, 200, fit="inside").size == (200, 150)


def test_resize_rejects_unknown_fit() -> None:
    with pytest.raises(RasterOperationError):
        handle().resize(10, 10, fit="stretch")


def test_contain_pads_with_background() -> None:
    image = handle(size=(40, 20), color=(255, 0, 0))

    image.resize(40, 40, fit="contain", background=(0, 0, 255, 255))

    assert image.image.getpixel((20, 2)) == (0, 0, 255)
    assert image.image.getpixel((20, 20)) == (255, 0, 0)


def test_extend_and_trim() -> None:
    image = handle(size=(10, 10), color=(255, 0, 0))

    image.extend(top=5, bottom=5, left=3, right=7, background=config.WHITE)
    assert image.size == (20, 20)
    assert image.image.getpixel((0, 0)) == (255, 255, 255)

    image.trim()
    assert image.size == (10, 10)
    assert image.image.getpixel((0, 0)) == (255, 0, 0)


def test_transparent_extend_adds_alpha() -> None:
    image = handle(size=(10, 10))

    image.extend(1, 1, 1, 1, background=config.TRANSPARENT_WHITE)

    assert image.has_alpha
    assert image.image.getpixel((0, 0)) == (255, 255, 255, 0)


def test_flatten_background_is_immediate() -> None:
    image = handle(size=(4, 4), color=(0, 0, 0, 0), mode="RGBA")
    image.flatten_background(config.WHITE)

    assert not image.has_alpha
    assert image.image.getpixel((1, 1)) == (255, 255, 255)

    out = decode(image.invert().encode())

    assert out.mode == "RGB"
    assert out.getpixel((1, 1)) == (0, 0, 0)


def test_padding_after_flatten_is_flattened_on_encode() -> None:
    image = handle(size=(4, 4))
    image.flatten_background((255, 0, 0, 255))
    image.extend(2, 2, 2, 2, background=config.TRANSPARENT_WHITE)

    out = decode(image.encode())

    assert out.mode == "RGB"
    assert out.getpixel((0, 0)) == (255, 0, 0)


def test_brightness_scales_hsl_lightness() -> None:
    darker = handle(size=(2, 2), color=(200, 100, 50)).modulate_brightness(0.5)
    lighter = handle(size=(2, 2), color=(100, 150, 200)).modulate_brightness(1.2)
    grey = handle(size=(2, 2), color=(100, 100, 100, 77), mode="RGBA").modulate_brightness(0.45)

    assert darker.image.getpixel((0, 0)) == (100, 50, 25)
    assert lighter.image.getpixel((0, 0)) == (144, 180, 216)
    assert grey.image.getpixel((0, 0)) == (45, 45, 45, 77)
    assert handle(size=(2, 2)).modulate_brightness(0).image.getpixel((0, 0)) == (0, 0, 0)


def test_color_operations_keep_alpha() -> None:
    image = handle(size=(4, 4), color=(200, 100, 50, 128), mode="RGBA")

    image.invert().linear(1.0, 10)

    assert image.image.getpixel((0, 0)) == (65, 165, 215, 128)


def test_scale_channels_saturates() -> None:
    image = handle(size=(2, 2), color=(100, 10, 60))

    image.scale_channels((3, 0.5, 1.25))

    assert image.image.getpixel((0, 0)) == (255, 5, 75)


def test_encode_without_output_format_uses_source(make_image) -> None:
    image = RasterHandle.open(make_image("source.bmp", size=(6, 4)))

    assert decode(image.encode()).format == "BMP"
