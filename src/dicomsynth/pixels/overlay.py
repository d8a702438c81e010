"""
Text overlays burned into synthetic rasters.

A text block is rendered as one unit:
1. Build a boolean glyph mask for every visible character of every line.
2. Pick ONE brightness level for the whole block.
3. Fill the padded backing rectangle, skipping pixels covered by glyphs.
4. Write the glyph pixels at the block level.

Because the backing fill never touches glyph pixels and the level is chosen
once, every glyph pixel of a block ends up with the same value regardless of
which line or character it belongs to.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .font import CHAR_ADVANCE, GLYPH_HEIGHT, GLYPH_WIDTH, LINE_ADVANCE, glyph_mask, text_mask, text_width

logger = logging.getLogger(__name__)

BLOCK_ORIGIN_X = 20
BLOCK_ORIGIN_Y = 30
BLOCK_PADDING = 12
BACKING_LEVEL = 0


@dataclass(frozen=True)
class OverlayResult:
    """Where a block landed and how it was drawn."""
    mask: np.ndarray
    level: int
    rect: Tuple[int, int, int, int]
    lines_drawn: int
    scale: int


def block_scale(width: int, height: int) -> int:
    """Glyph scale for the metadata block: 1 below 2048 px, then one step per 1024 px."""
    return max(1, min(width, height) // 1024)


def block_level(max_value: int) -> int:
    """Brightness shared by every glyph pixel of a block."""
    return int(max_value)


def _glyph_layout(
    lines: Sequence[str],
    width: int,
    height: int,
    x: int,
    y: int,
    scale: int,
) -> Tuple[np.ndarray, int, int]:
    mask = np.zeros((height, width), dtype=bool)
    lines_drawn = 0
    widest = 0
    glyph_h = GLYPH_HEIGHT * scale
    glyph_w = GLYPH_WIDTH * scale

    for line_index, line in enumerate(lines):
        top = y + line_index * LINE_ADVANCE * scale
        if top < 0 or top + glyph_h > height:
            break
        drawn = 0
        for char_index, char in enumerate(line):
            left = x + char_index * CHAR_ADVANCE * scale
            if left < 0 or left + glyph_w > width:
                break
            mask[top:top + glyph_h, left:left + glyph_w] |= glyph_mask(char, scale)
            drawn += 1
        widest = max(widest, text_width(line[:drawn], scale))
        lines_drawn += 1

    return mask, lines_drawn, widest


def render_text_block(
    raster: np.ndarray,
    lines: Sequence[str],
    max_value: int,
    x: int = BLOCK_ORIGIN_X,
    y: int = BLOCK_ORIGIN_Y,
    scale: Optional[int] = None,
    padding: int = BLOCK_PADDING,
) -> OverlayResult:
    """
    Draw a multi-line text block with a dark backing rectangle, in place.

    Lines that would extend below the raster are dropped; characters past
    the right edge are clipped.

    Args:
        raster: 2-D integer array (rows, columns), modified in place
        lines: Text lines, top to bottom
        max_value: Largest representable sample value
        x, y: Top-left corner of the first glyph
        scale: Glyph scale; defaults to block_scale() for the raster
        padding: Backing rectangle margin around the glyphs

    Returns:
        OverlayResult with the glyph mask, level and backing rectangle
    """
    height, width = raster.shape
    if scale is None:
        scale = block_scale(width, height)

    mask, lines_drawn, widest = _glyph_layout(lines, width, height, x, y, scale)
    level = block_level(max_value)

    if lines_drawn == 0:
        logger.debug("Text block does not fit a %dx%d raster; nothing drawn", width, height)
        return OverlayResult(mask, level, (0, 0, 0, 0), 0, scale)

    block_height = (lines_drawn - 1) * LINE_ADVANCE * scale + GLYPH_HEIGHT * scale
    left = max(0, x - padding)
    top = max(0, y - padding)
    right = min(width, x + widest + padding)
    bottom = min(height, y + block_height + padding)

    region = raster[top:bottom, left:right]
    region[~mask[top:bottom, left:right]] = BACKING_LEVEL
    raster[mask] = level

    return OverlayResult(mask, level, (left, top, right, bottom), lines_drawn, scale)


def render_centered_label(raster: np.ndarray, text: str, max_value: int) -> Optional[np.ndarray]:
    """
    Draw a large label centred on the raster, in place, at full brightness.

    The label shrinks until it fits; if it cannot fit at scale 1, nothing is
    drawn and None is returned. Otherwise the glyph mask is returned.
    """
    height, width = raster.shape
    scale = max(1, min(width, height) // (GLYPH_HEIGHT * 8))
    while scale > 1 and (text_width(text, scale) > width or GLYPH_HEIGHT * scale > height):
        scale -= 1
    label_w = text_width(text, scale)
    label_h = GLYPH_HEIGHT * scale
    if not text or label_w > width or label_h > height:
        return None

    top = (height - label_h) // 2
    left = (width - label_w) // 2
    mask = np.zeros((height, width), dtype=bool)
    mask[top:top + label_h, left:left + label_w] = text_mask(text, scale)
    raster[mask] = int(max_value)
    return mask

