"""
File input / output module.
Source access, output sinks (buffer or path) and the passthrough copy.
"""
import io
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Optional, Protocol, Union, BinaryIO

import pillow_heif
from loguru import logger

# HEIF/HEIC sources and targets go through Pillow like any other format
pillow_heif.register_heif_opener()

Source = Union[str, os.PathLike, bytes]


def as_file(source: Source) -> Union[str, BinaryIO]:
    """Something Image.open() accepts: a path string or an in-memory stream"""
    if isinstance(source, (bytes, bytearray)):
        return io.BytesIO(source)
    return os.fspath(source)


def read_source_bytes(source: Source) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    with open(source, 'rb') as f:
        return f.read()


def read_source_head(source: Source, size: int = 1024) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source[:size])
    with open(source, 'rb') as f:
        return f.read(size)


def same_file(source: Source, target: str) -> bool:
    if isinstance(source, (bytes, bytearray)):
        return False
    return os.path.abspath(os.fspath(source)) == os.path.abspath(target)


def write_bytes(data: bytes, output_path: str):
    """
    Write through a temporary file in the target directory and rename it
    into place, so a failed write never leaves a truncated output behind.
    """
    directory = os.path.dirname(os.path.abspath(output_path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.pixel_alchemy-', suffix='.tmp')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp_path, output_path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def copy_file(source: Source, target: str):
    """Copy source bytes unchanged to target (no-op when they are the same file)"""
    if same_file(source, target):
        logger.debug(f"[IO] Source is target, nothing to copy: {target}")
        return
    if isinstance(source, (bytes, bytearray)):
        write_bytes(bytes(source), target)
    else:
        shutil.copyfile(os.fspath(source), target)


@dataclass(frozen=True)
class TransformResult:
    """Resolved output format plus either the encoded bytes or the written path"""
    format: str
    data: Optional[bytes] = None
    path: Optional[str] = None


class OutputSink(Protocol):
    """Where an encoded image (or a passthrough copy) ends up"""

    def write(self, data: bytes, fmt: str) -> TransformResult:
        ...

    def copy_from(self, source: Source, fmt: str) -> TransformResult:
        ...


class BufferSink:
    """Keep the output in memory"""

    def write(self, data: bytes, fmt: str) -> TransformResult:
        return TransformResult(format=fmt, data=data)

    def copy_from(self, source: Source, fmt: str) -> TransformResult:
        return TransformResult(format=fmt, data=read_source_bytes(source))


class PathSink:
    """Write the output to a file path"""

    def __init__(self, output_path: Union[str, os.PathLike]):
        self.path = os.fspath(output_path)

    def write(self, data: bytes, fmt: str) -> TransformResult:
        write_bytes(data, self.path)
        logger.info(f"  ✅ Saved: {self.path} ({fmt}, {len(data)} bytes)")
        return TransformResult(format=fmt, path=self.path)

    def copy_from(self, source: Source, fmt: str) -> TransformResult:
        copy_file(source, self.path)
        logger.info(f"  ✅ Copied unchanged: {self.path} ({fmt})")
        return TransformResult(format=fmt, path=self.path)


def sink_for(output_path: Optional[Union[str, os.PathLike]]) -> OutputSink:
    """PathSink for a destination path, BufferSink when there is none"""
    if output_path is None:
        return BufferSink()
    return PathSink(output_path)
