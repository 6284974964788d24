"""Shared fixtures: small on-disk images and a recording raster double."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image


SVG_BYTES = (
    b'<?xml version="1.0" encoding="UTF-8"?>\n'
    b'<svg xmlns="http://www.w3.org/2000/svg" width="120" height="80" viewBox="0 0 120 80">'
    b'<rect x="10" y="10" width="100" height="60" fill="#c33"/></svg>\n'
)


class RecordingHandle:
    """Stands in for RasterHandle and records every primitive call."""

    def __init__(self, source_format: str = "jpeg") -> None:
        self.source_format = source_format
        self.calls: list[tuple] = []

    def __getattr__(self, name: str):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return record

    @property
    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def call(self, name: str) -> tuple:
        return next(call for call in self.calls if call[0] == name)


@pytest.fixture
def recorder() -> RecordingHandle:
    return RecordingHandle()


@pytest.fixture
def make_image(tmp_path: Path):
    """Write a solid-colour image (optionally with EXIF and single pixels) and return its path."""

    def _make(
        name: str = "source.png",
        size: tuple[int, int] = (80, 60),
        color=(200, 100, 50),
        mode: str = "RGB",
        exif: dict | None = None,
        pixels: dict | None = None,
    ) -> Path:
        image = Image.new(mode, size, color)
        for xy, value in (pixels or {}).items():
            image.putpixel(xy, value)

        kwargs = {}
        if exif:
            block = Image.Exif()
            for tag, value in exif.items():
                block[tag] = value
            kwargs["exif"] = block.tobytes()

        path = tmp_path / name
        image.save(path, **kwargs)
        return path

    return _make


@pytest.fixture
def svg_file(tmp_path: Path) -> Path:
    path = tmp_path / "drawing.svg"
    path.write_bytes(SVG_BYTES)
    return path


def decode(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image
