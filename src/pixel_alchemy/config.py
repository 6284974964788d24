import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

# 1. Map: user-facing format names -> Pillow format identifiers
FORMAT_ALIASES = {
    'jpg': 'JPEG',
    'jpeg': 'JPEG',
    'png': 'PNG',
    'tif': 'TIFF',
    'tiff': 'TIFF',
    'webp': 'WEBP',
    'gif': 'GIF',
    'bmp': 'BMP',
    'heic': 'HEIF',
    'heif': 'HEIF',
}

# 2. Formats without alpha support: transparency is flattened onto white
FLATTEN_FORMATS = {'jpg', 'jpeg', 'tif', 'tiff'}

# 3. Vector / animated formats that are copied unchanged when not converted
PASSTHROUGH_FORMATS = {'svg', 'gif'}

# 4. Pillow formats that can carry an EXIF block on save
EXIF_FORMATS = {'JPEG', 'PNG', 'WEBP', 'TIFF', 'HEIF'}

# 5. Pillow formats that can carry an ICC profile on save
ICC_FORMATS = {'JPEG', 'PNG', 'WEBP', 'TIFF', 'HEIF'}

WHITE = (255, 255, 255, 255)
TRANSPARENT_WHITE = (255, 255, 255, 0)

JPEG_QUALITY = 90
PNG_COMPRESSION_LEVEL = 9

LEVELS_MODES = ('matrix', 'raw')


def canonical_format(fmt: Optional[str]) -> Optional[str]:
    """Lower-case a format name and fold 'jpg'/'tif' style aliases."""
    if not fmt:
        return None
    fmt = str(fmt).strip().lower()
    if fmt == 'jpg':
        return 'jpeg'
    if fmt == 'tif':
        return 'tiff'
    if fmt == 'heic':
        return 'heif'
    return fmt


@dataclass(frozen=True)
class Settings:
    """Process-wide settings read from the environment."""
    log_level: str = 'INFO'
    log_dir: Optional[str] = None
    levels_mode: str = 'matrix'
    max_workers: int = 4


def _build_settings() -> Settings:
    levels_mode = os.getenv('PIXEL_ALCHEMY_LEVELS_MODE', 'matrix').lower()
    if levels_mode not in LEVELS_MODES:
        levels_mode = 'matrix'

    try:
        max_workers = int(os.getenv('PIXEL_ALCHEMY_MAX_WORKERS', '4'))
    except ValueError:
        max_workers = 4

    return Settings(
        log_level=os.getenv('PIXEL_ALCHEMY_LOG_LEVEL', 'INFO').upper(),
        log_dir=os.getenv('PIXEL_ALCHEMY_LOG_DIR') or None,
        levels_mode=levels_mode,
        max_workers=max(1, max_workers),
    )


@lru_cache
def get_settings() -> Settings:
    """Cached settings; call get_settings.cache_clear() after changing the environment."""
    return _build_settings()
