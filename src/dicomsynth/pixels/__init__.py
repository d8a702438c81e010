"""Pixel synthesis: modality patterns, bitmap font and text overlays."""

from .synthesis import (
    bytes_per_sample,
    max_sample_value,
    overlay_lines,
    pack_samples,
    render_pattern,
    synthesize,
    synthesize_image,
    unpack_samples,
)

__all__ = [
    "bytes_per_sample",
    "max_sample_value",
    "overlay_lines",
    "pack_samples",
    "render_pattern",
    "synthesize",
    "synthesize_image",
    "unpack_samples",
]
