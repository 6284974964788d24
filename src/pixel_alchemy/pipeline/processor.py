import os
from typing import Optional
from loguru import logger

from pixel_alchemy import config, raster
from pixel_alchemy.file_io import OutputSink, BufferSink, TransformResult
from pixel_alchemy.logger import LoguruHandler
from pixel_alchemy.pipeline.request import TransformRequest, CanonicalTransforms, SourceMetadata
from pixel_alchemy.pipeline.normalizer import normalize
from pixel_alchemy.pipeline.operations import build_operations


def apply_output_format(
    image: raster.RasterHandle,
    target_format: Optional[str],
    source_format: Optional[str],
    chroma_444: bool = False,
) -> str:
    """
    Select the output encoding on a handle and return the resolved format.
    Formats without alpha (JPEG, TIFF) flatten transparency onto white.
    Without a target format the source format is kept.
    """
    fmt = config.canonical_format(target_format)
    source_format = config.canonical_format(source_format)

    if fmt == 'png':
        png_options = {'compress_level': config.PNG_COMPRESSION_LEVEL}
        if source_format == 'jpeg':
            png_options['optimize'] = True
        image.select_output_format('png', **png_options)
    elif fmt == 'jpeg':
        jpeg_options = {'quality': config.JPEG_QUALITY}
        if chroma_444:
            jpeg_options['subsampling'] = 0  # 4:4:4
        image.select_output_format('jpeg', **jpeg_options)
        image.flatten_background(config.WHITE)
    elif fmt == 'tiff':
        image.select_output_format('tiff')
        image.flatten_background(config.WHITE)
    elif fmt:
        image.select_output_format(fmt)
    else:
        fmt = source_format
        image.select_output_format(fmt)

    return fmt


def should_passthrough(metadata: SourceMetadata, target_format: Optional[str], canonical: CanonicalTransforms) -> bool:
    """Vector/animated sources are copied as-is when nothing would change them"""
    source_format = metadata.format
    if source_format not in config.PASSTHROUGH_FORMATS:
        return False
    target = config.canonical_format(target_format)
    if target and target != source_format:
        return False
    return canonical.is_identity


class PipelineExecutor:
    """
    Runs one transform request end to end:
    metadata -> normalize -> (passthrough | decode -> format -> operations) -> encode -> sink.

    Stateless apart from configuration, so one instance can serve concurrent callers.
    """

    def __init__(self, levels_mode: Optional[str] = None):
        self.levels_mode = levels_mode or config.get_settings().levels_mode
        if self.levels_mode not in config.LEVELS_MODES:
            raise ValueError(f"Unknown levels mode: {self.levels_mode}")

    def execute(
        self,
        image: raster.RasterHandle,
        canonical: CanonicalTransforms,
        target_format: Optional[str] = None,
        log: Optional[LoguruHandler] = None,
    ) -> raster.RasterHandle:
        """Apply output-format selection and every operation, in order, to a handle"""
        fmt = apply_output_format(image, target_format, image.source_format, chroma_444=True)
        self._debug(log, f"[Pipeline] Output format: {fmt}")

        for op in build_operations(canonical, self.levels_mode):
            self._debug(log, f"[Pipeline] {op.name}: {op}")
            op.apply(image)

        return image

    def run(
        self,
        request: TransformRequest,
        sink: Optional[OutputSink] = None,
        log: Optional[LoguruHandler] = None,
    ) -> TransformResult:
        """
        Execute a full request. Metadata, primitive and encode failures propagate;
        invalid transform parameters are normalized away instead.
        """
        sink = sink or BufferSink()
        source_name = self._describe(request.source)

        metadata = raster.read_metadata(request.source)
        canonical = normalize(request.params, metadata)
        self._debug(log, f"[Pipeline] {source_name}: {metadata.width}x{metadata.height} {metadata.format}")

        if should_passthrough(metadata, request.format, canonical):
            logger.info(f"[Pipeline] Passthrough {metadata.format}: {source_name}")
            return sink.copy_from(request.source, metadata.format)

        image = raster.RasterHandle.open(request.source)
        self.execute(image, canonical, request.format, log=log)
        fmt = config.canonical_format(request.format) or metadata.format
        data = image.encode()
        logger.info(f"[Pipeline] Transformed {source_name} -> {fmt}")
        return sink.write(data, fmt)

    @staticmethod
    def _describe(source) -> str:
        if isinstance(source, (bytes, bytearray)):
            return f"<{len(source)} bytes>"
        return os.path.basename(os.fspath(source))

    @staticmethod
    def _debug(log, message: str):
        if isinstance(log, LoguruHandler):
            log.debug(message)
        else:
            logger.debug(message)
