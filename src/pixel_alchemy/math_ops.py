import numpy as np

# =========================================================
# Vectorised pixel kernels (uint8 in, uint8 out)
# =========================================================
# All kernels take an HxWxC uint8 array and return a new uint8 array.
# Only the first three channels are touched; anything after (alpha) is copied.


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def apply_matrix(img: np.ndarray, matrix) -> np.ndarray:
    """
    Colour recombination: every RGB pixel is multiplied by a 3x3 matrix.
    out[c] = sum(matrix[c][k] * in[k])
    """
    m = np.asarray(matrix, dtype=np.float64)
    if m.shape != (3, 3):
        raise ValueError(f"Recombination matrix must be 3x3, got {m.shape}")

    out = img.copy()
    rgb = img[:, :, :3].astype(np.float64)
    out[:, :, :3] = _to_uint8(np.einsum('hwk,ck->hwc', rgb, m))
    return out


def apply_linear(img: np.ndarray, slope: float, intercept: float) -> np.ndarray:
    """out = slope * in + intercept, saturated to [0, 255]"""
    out = img.copy()
    rgb = img[:, :, :3].astype(np.float64)
    out[:, :, :3] = _to_uint8(rgb * slope + intercept)
    return out


def apply_gamma(img: np.ndarray, gamma: float) -> np.ndarray:
    """Gamma encode: out = 255 * (in / 255) ** (1 / gamma)"""
    if gamma <= 0:
        raise ValueError(f"Gamma must be positive, got {gamma}")

    # 256-entry lookup table instead of a per-pixel power
    lut = _to_uint8(255.0 * (np.arange(256, dtype=np.float64) / 255.0) ** (1.0 / gamma))
    out = img.copy()
    out[:, :, :3] = lut[img[:, :, :3]]
    return out


def scale_channels_saturating(img: np.ndarray, factors) -> np.ndarray:
    """
    Raw per-byte channel scaling: v = min(255, v * factor), truncated.
    Only images with exactly 3 channels are rescaled; anything else is
    returned unchanged.
    """
    if img.ndim != 3 or img.shape[2] != 3:
        return img

    f = np.asarray(factors, dtype=np.float64).reshape(1, 1, 3)
    scaled = np.minimum(255.0, img.astype(np.float64) * f)
    return np.floor(scaled).astype(np.uint8)


def scale_lightness(img: np.ndarray, factor: float) -> np.ndarray:
    """
    HSL lightness modulation: L' = clip(L * factor), hue and saturation kept.

    In HSL every channel is L + C * (hue term), with chroma
    C = S * (1 - |2L - 1|). Hue and saturation are fixed, so each channel's
    offset from L scales by the ratio of the new and old (1 - |2L - 1|).
    """
    out = img.copy()
    rgb = img[:, :, :3].astype(np.float64) / 255.0

    lightness = (rgb.max(axis=2) + rgb.min(axis=2)) / 2.0
    scaled = np.clip(lightness * factor, 0.0, 1.0)

    old_span = 1.0 - np.abs(2.0 * lightness - 1.0)
    new_span = 1.0 - np.abs(2.0 * scaled - 1.0)
    # Pure black/white have no chroma to carry over
    ratio = np.divide(new_span, old_span, out=np.zeros_like(old_span), where=old_span > 0)

    result = scaled[..., None] + (rgb - lightness[..., None]) * ratio[..., None]
    out[:, :, :3] = _to_uint8(result * 255.0)
    return out
