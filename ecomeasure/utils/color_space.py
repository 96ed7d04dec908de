"""
Colour-space helper functions.

Provides vectorised utilities for:
- Brightness and greenness indices
- Zero-safe channel ratios
- RGB to HSV conversion
- Grayscale conversion and Sobel gradient magnitude

All functions take (..., 3) uint8 arrays and never modify their input.
"""
import numpy as np
from scipy import ndimage


SOBEL_X = np.array([
    [-1, 0, 1],
    [-2, 0, 2],
    [-1, 0, 1],
])

SOBEL_Y = np.array([
    [-1, -2, -1],
    [0, 0, 0],
    [1, 2, 1],
])


def split_channels(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Split an (..., 3) array into float64 R, G, B planes.

    Args:
        rgb: Array whose last axis holds R, G, B values in [0, 255]

    Returns:
        Tuple of (r, g, b) float arrays
    """
    channels = np.asarray(rgb, dtype=np.float64)
    return channels[..., 0], channels[..., 1], channels[..., 2]


def safe_ratio(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """
    Element-wise division that yields 0 wherever the denominator is 0.
    """
    numerator = np.asarray(numerator, dtype=np.float64)
    denominator = np.asarray(denominator, dtype=np.float64)
    result = np.zeros(np.broadcast(numerator, denominator).shape, dtype=np.float64)
    np.divide(numerator, denominator, out=result, where=denominator != 0)
    return result


def brightness(rgb: np.ndarray) -> np.ndarray:
    """Mean of the three channels, in [0, 255]."""
    r, g, b = split_channels(rgb)
    return (r + g + b) / 3


def greenness(rgb: np.ndarray) -> np.ndarray:
    """Green share of the channel sum, with the sum floored at 1."""
    r, g, b = split_channels(rgb)
    return g / np.maximum(r + g + b, 1)


def round_half_up(values: np.ndarray) -> np.ndarray:
    """Round .5 away from negative infinity, matching field-app rounding."""
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5)


def rgb_to_hsv(
    rgb: np.ndarray,
    round_hue: bool = False,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Convert RGB to hue, saturation and value.

    Hue follows the standard sextant formula with ties resolved in R, G, B
    order. When ``round_hue`` is set the hue is rounded to whole degrees
    before being wrapped into [0, 360).

    Args:
        rgb: (..., 3) array of R, G, B values in [0, 255]
        round_hue: Round hue to integer degrees

    Returns:
        Tuple of:
            - hue in degrees, [0, 360)
            - saturation, [0, 1]
            - value as max(r, g, b), [0, 255]
    """
    r, g, b = split_channels(rgb)

    max_c = np.maximum(np.maximum(r, g), b)
    min_c = np.minimum(np.minimum(r, g), b)
    delta = max_c - min_c

    hue_r = safe_ratio(g - b, delta)
    hue_g = safe_ratio(b - r, delta) + 2
    hue_b = safe_ratio(r - g, delta) + 4

    sextant = np.where(max_c == r, hue_r, np.where(max_c == g, hue_g, hue_b))
    sextant = np.where(delta == 0, 0.0, sextant)

    hue = sextant * 60
    if round_hue:
        hue = round_half_up(hue)
    hue = np.where(hue < 0, hue + 360, hue)

    saturation = safe_ratio(delta, max_c)
    return hue, saturation, max_c


def grayscale(rgb: np.ndarray) -> np.ndarray:
    """
    Luma conversion (0.299 R + 0.587 G + 0.114 B), rounded to integers.

    Returns:
        int32 array of gray levels in [0, 255]
    """
    r, g, b = split_channels(rgb)
    gray = round_half_up(0.299 * r + 0.587 * g + 0.114 * b)
    return np.clip(gray, 0, 255).astype(np.int32)


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """
    Gradient magnitude of a 2-D gray image under the 3x3 Sobel operator.

    Border pixels are computed with edge replication but are not meaningful;
    callers restrict themselves to the interior.

    Args:
        gray: 2-D integer array

    Returns:
        float64 array of gradient magnitudes, same shape as ``gray``
    """
    gray = np.asarray(gray, dtype=np.int32)
    gx = ndimage.correlate(gray, SOBEL_X, mode="nearest")
    gy = ndimage.correlate(gray, SOBEL_Y, mode="nearest")
    return np.hypot(gx.astype(np.float64), gy.astype(np.float64))


def interior_mask(height: int, width: int) -> np.ndarray:
    """Boolean mask that excludes the 1-pixel frame border."""
    mask = np.zeros((height, width), dtype=bool)
    if height > 2 and width > 2:
        mask[1:-1, 1:-1] = True
    return mask
