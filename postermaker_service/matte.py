"""
Matte post-processing for raw saliency model output.

U^2-Net exports sometimes come out with reversed polarity (background scored
high, subject scored low), and their probabilities rarely span the full
[0, 1] range. The helpers here fix both before the matte is used as alpha:

 - `correct_orientation` flips the grid when the border looks more "foreground"
   than the middle,
 - `normalize_contrast` min-max stretches the result into [0, 1].

The polarity check is a heuristic: it assumes the subject sits roughly in the
middle of the frame and can misfire on off-center subjects. It lives behind
the `OrientationCorrector` interface so other strategies can be swapped in.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

# Empirical thresholds; never validated against ground truth, keep overridable.
EDGE_BAND_FRACTION = 0.05
MIN_EDGE_BORDER = 2
CENTER_BOX_LOW = 0.25
CENTER_BOX_HIGH = 0.75
NORMALIZE_EPSILON = 1e-6


def as_probability_grid(values) -> np.ndarray:
    """Validate and coerce model output into a square float32 grid."""
    grid = np.asarray(values, dtype=np.float32)
    if grid.ndim != 2 or grid.shape[0] != grid.shape[1] or grid.shape[0] == 0:
        raise ValueError(f"Probability grid must be square, non-empty 2-D, got shape {grid.shape}")
    return grid


class OrientationCorrector(ABC):
    @abstractmethod
    def correct(self, grid: np.ndarray) -> np.ndarray:
        """Return a grid whose foreground is scored high."""


class PassthroughCorrector(OrientationCorrector):
    """Trust the model's polarity as-is."""

    def correct(self, grid: np.ndarray) -> np.ndarray:
        return grid.copy()


@dataclass(frozen=True)
class EdgeCenterCorrector(OrientationCorrector):
    """Invert the grid when the edge band mean exceeds the center box mean."""

    edge_fraction: float = EDGE_BAND_FRACTION
    min_border: int = MIN_EDGE_BORDER
    center_low: float = CENTER_BOX_LOW
    center_high: float = CENTER_BOX_HIGH

    def border_width(self, side: int) -> int:
        return max(self.min_border, int(np.floor(side * self.edge_fraction)))

    def region_masks(self, side: int) -> tuple[np.ndarray, np.ndarray]:
        """Boolean (edge, center) masks for an S x S grid."""
        border = self.border_width(side)
        idx = np.arange(side)
        near_border = (idx < border) | (idx >= side - border)
        edge = near_border[:, None] | near_border[None, :]

        c0 = int(np.floor(side * self.center_low))
        c1 = int(np.floor(side * self.center_high))
        in_center = (idx >= c0) & (idx < c1)
        center = in_center[:, None] & in_center[None, :]
        return edge, center

    def region_means(self, grid: np.ndarray) -> tuple[float, float]:
        edge, center = self.region_masks(grid.shape[0])
        # float64 accumulation keeps the means stable on large grids.
        edge_mean = float(grid[edge].sum(dtype=np.float64)) / max(1, int(edge.sum()))
        center_mean = float(grid[center].sum(dtype=np.float64)) / max(1, int(center.sum()))
        return edge_mean, center_mean

    def correct(self, grid: np.ndarray) -> np.ndarray:
        edge_mean, center_mean = self.region_means(grid)
        inverted = edge_mean > center_mean
        logger.debug(
            "orientation: side=%d edge_mean=%.4f center_mean=%.4f inverted=%s",
            grid.shape[0],
            edge_mean,
            center_mean,
            inverted,
        )
        if inverted:
            return (1.0 - grid).astype(np.float32)
        return grid.copy()


def correct_orientation(values, corrector: Optional[OrientationCorrector] = None) -> np.ndarray:
    """Flip model polarity when the configured heuristic says it is reversed."""
    grid = as_probability_grid(values)
    corrector = corrector or EdgeCenterCorrector()
    return corrector.correct(grid)


def normalize_contrast(values, epsilon: float = NORMALIZE_EPSILON) -> np.ndarray:
    """
    Min-max stretch a grid into [0, 1].

    A constant grid maps to all zeros: the denominator is floored to
    `epsilon` so there is never a division by zero.
    """
    grid = as_probability_grid(values)
    lo = float(grid.min())
    hi = float(grid.max())
    denom = max(epsilon, hi - lo)
    logger.debug("normalize: lo=%.4f hi=%.4f denom=%.6f", lo, hi, denom)
    matte = (grid.astype(np.float64) - lo) / denom
    return np.clip(matte, 0.0, 1.0).astype(np.float32)
