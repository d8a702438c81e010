"""
Procedural pixel patterns, one per modality family.

Every pattern returns a float64 array of shape (height, width) with values in
[0, max_value]. Intensities are expressed as fractions of the bit range so the
same pattern works for any bit depth from 1 to 16.
"""

import logging
from typing import Sequence, Tuple

import numpy as np

from .overlay import render_centered_label

logger = logging.getLogger(__name__)

# (centre x, centre y, radius, peak) as fractions of the raster width/height
HotSpot = Tuple[float, float, float, float]

NM_HOT_SPOTS: Sequence[HotSpot] = (
    (0.25, 0.25, 0.125, 0.80),
    (0.75, 0.50, 0.167, 0.60),
    (0.50, 0.75, 0.100, 0.40),
)
PT_HOT_SPOTS: Sequence[HotSpot] = (
    (0.30, 0.30, 0.150, 0.90),
    (0.70, 0.60, 0.120, 0.70),
)


def _grid(width: int, height: int) -> Tuple[np.ndarray, np.ndarray]:
    ys, xs = np.mgrid[0:height, 0:width]
    return xs.astype(np.float64), ys.astype(np.float64)


def _finish(values: np.ndarray, max_value: int) -> np.ndarray:
    return np.clip(values, 0.0, 1.0) * max_value


def radiography(width: int, height: int, max_value: int, rng: np.random.Generator,
                label: str = "") -> np.ndarray:
    """Spiral of angle plus radius around the centre, with a large centred label."""
    xs, ys = _grid(width, height)
    dx = xs - width // 2
    dy = ys - height // 2
    angle = np.arctan2(dy, dx)
    distance = np.hypot(dx, dy)
    spiral = np.mod((angle + np.pi) / (2 * np.pi) * 10 + distance / 50, 1.0)
    values = spiral * max_value
    if label:
        render_centered_label(values, label, max_value)
    return values


def ct(width: int, height: int, max_value: int, rng: np.random.Generator) -> np.ndarray:
    """Circular tissue disc on dark air, both with small jitter."""
    xs, ys = _grid(width, height)
    radius = 0.45 * min(width, height)
    inside = (xs - width / 2) ** 2 + (ys - height / 2) ** 2 < radius ** 2
    tissue = 0.70 + rng.uniform(-0.03, 0.03, size=(height, width))
    air = 0.03 + rng.uniform(0.0, 0.04, size=(height, width))
    return _finish(np.where(inside, tissue, air), max_value)


def mr(width: int, height: int, max_value: int, rng: np.random.Generator) -> np.ndarray:
    """Random noise with block bands cycling through four brightness offsets."""
    xs, ys = _grid(width, height)
    block = max(1, min(width, height) // 4)
    region = ((xs // block + ys // block) % 4).astype(np.intp)
    offsets = np.array([20.0, -20.0, 40.0, -40.0]) / 255.0
    noise = rng.integers(0, 256, size=(height, width)) / 255.0
    return _finish(noise + offsets[region], max_value)


def ultrasound(width: int, height: int, max_value: int, rng: np.random.Generator) -> np.ndarray:
    """Depth-dependent echo bands, multiplicative speckle and periodic scan lines."""
    _, ys = _grid(width, height)
    shape = (height, width)
    depth = ys / height
    echo = np.select(
        [depth < 0.125, depth < 0.25, depth < 0.5],
        [
            180 + rng.uniform(0, 40, size=shape),
            120 + rng.uniform(0, 60, size=shape),
            80 + rng.uniform(0, 80, size=shape),
        ],
        default=40 + rng.uniform(0, 60, size=shape),
    )
    echo = echo * (1 + rng.uniform(-0.1, 0.1, size=shape))
    scan_line = (ys.astype(np.intp) % 4) == 0
    echo = np.where(scan_line, echo + rng.uniform(0, 15, size=shape), echo)
    return _finish(echo / 255.0, max_value)


def mammography(width: int, height: int, max_value: int, rng: np.random.Generator) -> np.ndarray:
    """Near-uniform mid-grey with faint periodic diagonal structure."""
    xs, ys = _grid(width, height)
    xi = xs.astype(np.intp)
    yi = ys.astype(np.intp)
    values = 0.5 + rng.normal(0.0, 0.03, size=(height, width))
    values = np.where(np.mod(xi + yi, 100) < 5, values + 0.04, values)
    values = np.where(np.mod(xi - yi, 150) < 8, values - 0.04, values)
    return _finish(values, max_value)


def hot_spot(width: int, height: int, max_value: int, rng: np.random.Generator,
             spots: Sequence[HotSpot] = NM_HOT_SPOTS) -> np.ndarray:
    """Dim noisy background with Gaussian-profile circular hot spots."""
    xs, ys = _grid(width, height)
    values = rng.uniform(0.02, 0.08, size=(height, width))
    for cx, cy, r, peak in spots:
        radius = r * width
        d2 = (xs - cx * width) ** 2 + (ys - cy * height) ** 2
        inside = d2 < radius ** 2
        values = np.where(inside, values + peak * np.exp(-d2 / (2 * radius ** 2)), values)
    return _finish(values, max_value)


def treatment_field(width: int, height: int, max_value: int, rng: np.random.Generator) -> np.ndarray:
    """Bright rectangular field over the central half with a graded border band."""
    xs, ys = _grid(width, height)
    shape = (height, width)
    x1, x2 = width // 4, 3 * width // 4
    y1, y2 = height // 4, 3 * height // 4
    band = max(2, min(width, height) // 25)

    outside_x = np.maximum(np.maximum(x1 - xs, xs - x2), 0)
    outside_y = np.maximum(np.maximum(y1 - ys, ys - y2), 0)
    outside = np.hypot(outside_x, outside_y)

    background = 0.05 + rng.uniform(0.0, 0.05, size=shape)
    field_level = 0.75 + rng.uniform(-0.02, 0.02, size=shape)
    ramp = np.clip(1.0 - outside / band, 0.0, 1.0)
    border = background + ramp * (0.5 - background)
    return _finish(np.where(outside == 0, field_level, border), max_value)


def generic(width: int, height: int, max_value: int, rng: np.random.Generator) -> np.ndarray:
    """Uniform random noise across the full range."""
    return rng.uniform(0.0, 1.0, size=(height, width)) * max_value
