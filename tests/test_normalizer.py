"""Tests for transform normalization."""

from __future__ import annotations

import copy

from pixel_alchemy.pipeline.normalizer import is_valid_crop, normalize, round_half_up
from pixel_alchemy.pipeline.request import CropRect, Levels, ResizeSize, SourceMetadata

META = SourceMetadata(width=800, height=600, format="jpeg")


def test_normalize_does_not_mutate_params() -> None:
    crop = {"x": 0.25, "y": 0.25, "width": 0.5, "height": 0.5}
    resize = {"width": 100, "height": 200}
    params = {
        "crop": crop,
        "resize": resize,
        "flip_horizontal": True,
        "flip_vertical": True,
        "rotate": 270,
        "levels": {"r": 0.5},
    }
    snapshot = copy.deepcopy(params)

    normalize(params, META)

    assert params == snapshot
    assert params["crop"] is crop
    assert params["resize"] is resize


def test_proportional_crop_becomes_pixel_rectangle() -> None:
    canonical = normalize({"crop": {"x": 0.25, "y": 0.25, "width": 0.5, "height": 0.5}}, META)

    assert canonical.crop == CropRect(left=200, top=150, width=400, height=300)


def test_crop_overflowing_width_is_dropped() -> None:
    canonical = normalize({"crop": {"x": 0.6, "y": 0, "width": 0.6, "height": 0.5}}, META)

    assert canonical.crop is None


def test_crop_bounds_validation() -> None:
    assert is_valid_crop({"x": 0.1, "y": 0.1, "width": 0.9, "height": 0.9})
    assert is_valid_crop({"x": 0, "y": 0, "width": 1, "height": 1})
    assert not is_valid_crop({"x": 0.1, "y": 0.1, "width": 0, "height": 0.5})
    assert not is_valid_crop({"x": 0.1, "y": 0.6, "width": 0.5, "height": 0.5})
    assert not is_valid_crop({"x": -0.1, "y": 0.1, "width": 0.5, "height": 0.5})
    assert not is_valid_crop({"x": 0.1, "y": -0.1, "width": 0.5, "height": 0.5})
    assert not is_valid_crop({"x": 0.1, "y": 0.1, "width": 0.5})


def test_crop_at_origin_is_kept() -> None:
    canonical = normalize({"crop": {"x": 0, "y": 0, "width": 0.5, "height": 0.5}}, META)

    assert canonical.crop == CropRect(left=0, top=0, width=400, height=300)


def test_crop_rounds_half_up_on_original_dimensions() -> None:
    meta = SourceMetadata(width=5, height=5, format="png")

    canonical = normalize({"crop": {"x": 0.1, "y": 0.1, "width": 0.5, "height": 0.5}, "rotate": 90}, meta)

    assert canonical.crop == CropRect(left=1, top=1, width=3, height=3)
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1


def test_crop_rounding_is_clamped_to_the_image() -> None:
    meta = SourceMetadata(width=3, height=3, format="png")

    canonical = normalize({"crop": {"x": 0.5, "y": 0.5, "width": 0.5, "height": 0.5}}, meta)

    assert canonical.crop == CropRect(left=2, top=2, width=1, height=1)


def test_crop_rounding_to_nothing_is_dropped() -> None:
    meta = SourceMetadata(width=100, height=100, format="png")

    canonical = normalize({"crop": {"x": 0.5, "y": 0.5, "width": 0.001, "height": 0.2}}, meta)

    assert canonical.crop is None


def test_double_flip_collapses_to_rotation() -> None:
    canonical = normalize({"flip_horizontal": True, "flip_vertical": True, "rotate": 0}, META)

    assert canonical.flip_horizontal is False
    assert canonical.flip_vertical is False
    assert canonical.rotate == 180


def test_double_flip_wraps_rotation_and_then_swaps_axes() -> None:
    canonical = normalize(
        {"flip_horizontal": True, "flip_vertical": True, "rotate": 270, "resize": {"width": 10, "height": 20}},
        META,
    )

    assert canonical.rotate == 90
    assert canonical.resize == ResizeSize(width=20, height=10)
    assert not canonical.flip_horizontal and not canonical.flip_vertical


def test_sideways_rotation_swaps_resize_and_flips() -> None:
    canonical = normalize({"rotate": 90, "resize": {"width": 100, "height": 200}, "flip_horizontal": True}, META)

    assert canonical.resize == ResizeSize(width=200, height=100)
    assert canonical.flip_horizontal is False
    assert canonical.flip_vertical is True


def test_upright_rotation_keeps_axes() -> None:
    canonical = normalize({"rotate": 180, "resize": {"width": 100}, "flip_vertical": True}, META)

    assert canonical.resize == ResizeSize(width=100, height=None)
    assert canonical.flip_vertical is True
    assert canonical.flip_horizontal is False


def test_rotate_defaults_to_zero() -> None:
    canonical = normalize({}, META)

    assert canonical.rotate == 0
    assert canonical.is_identity


def test_unsupported_rotation_is_ignored() -> None:
    assert normalize({"rotate": 45}, META).rotate == 0
    assert normalize({"rotate": -90}, META).rotate == 270
    assert normalize({"rotate": 450}, META).rotate == 90


def test_empty_resize_is_dropped() -> None:
    assert normalize({"resize": {"width": 0, "height": None}}, META).resize is None
    assert normalize({"resize": {}}, META).resize is None


def test_missing_level_channels_default_to_zero() -> None:
    canonical = normalize({"levels": {"g": 0.5}}, META)

    assert canonical.levels == Levels(r=0.0, g=0.5, b=0.0)
    assert not canonical.levels.is_identity


def test_scalar_adjustments_are_carried_over() -> None:
    canonical = normalize({"brightness": 0.5, "contrast": -0.2, "gamma": 1, "sharpen": -1, "invert": True}, META)

    assert canonical.brightness == 0.5
    assert canonical.contrast == -0.2
    assert canonical.gamma == 1.0
    assert canonical.sharpen == -1.0
    assert canonical.invert is True
    assert not canonical.is_identity
