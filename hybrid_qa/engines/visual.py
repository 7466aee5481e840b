"""Pixel-level screenshot comparison for visual regression checks."""

from pathlib import Path
from typing import Tuple, Union

from PIL import Image, ImageChops

DEFAULT_TOLERANCE = 5.0

ImageSource = Union[str, Path]


def _ensure_same_size(baseline: Image.Image, candidate: Image.Image) -> Tuple[Image.Image, Image.Image]:
    """Resize the candidate to the baseline's dimensions."""
    if baseline.size != candidate.size:
        candidate = candidate.resize(baseline.size, Image.Resampling.LANCZOS)
    return baseline, candidate


def mismatch_percentage(baseline: ImageSource, candidate: ImageSource) -> float:
    """
    Percentage of pixels that differ between two images.

    Both images are compared in RGB; the candidate is resized to the
    baseline when their dimensions differ.
    """
    with Image.open(baseline) as base_img, Image.open(candidate) as cand_img:
        base_rgb, cand_rgb = _ensure_same_size(base_img.convert("RGB"), cand_img.convert("RGB"))
        diff = ImageChops.difference(base_rgb, cand_rgb).convert("L")

        total = diff.size[0] * diff.size[1]
        if total == 0:
            return 0.0
        # Histogram bucket 0 counts identical pixels.
        changed = total - diff.histogram()[0]
        return changed / total * 100


def within_tolerance(difference: float, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    return difference < tolerance
