"""Composite a normalized matte onto the source photo as its alpha channel."""

from __future__ import annotations

from io import BytesIO
import logging
from pathlib import Path

import cv2
import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)


def resample_matte(matte: np.ndarray, width: int, height: int) -> np.ndarray:
    """Bilinear resize of an S x S matte to the source resolution, clipped to [0, 1]."""
    matte = np.asarray(matte, dtype=np.float32)
    if matte.shape != (height, width):
        matte = cv2.resize(matte, (width, height), interpolation=cv2.INTER_LINEAR)
    return np.clip(matte, 0.0, 1.0)


def composite(source: Image.Image, matte: np.ndarray) -> Image.Image:
    """
    Build an RGBA cutout at the source's resolution.

    RGB is copied from `source` unchanged; alpha is the matte resampled to
    width x height and scaled to 0..255. Any existing source alpha is
    replaced.
    """
    width, height = source.size
    rgb_np = np.array(source.convert("RGB")).astype(np.uint8)
    alpha = resample_matte(matte, width, height)
    alpha_u8 = np.rint(alpha * 255.0).astype(np.uint8)

    rgba = np.dstack((rgb_np, alpha_u8))
    # (H, W, 4) uint8 is inferred as RGBA.
    return Image.fromarray(rgba)


def encode_png(image: Image.Image) -> bytes:
    buf = BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


def maybe_dump_debug(raw_grid: np.ndarray, matte: np.ndarray, cutout: Image.Image, debug_dir: Path) -> None:
    """Write the raw grid, the normalized matte and the cutout when DEBUG is enabled."""
    try:
        debug_dir.mkdir(parents=True, exist_ok=True)

        raw = np.asarray(raw_grid, dtype=np.float32)
        span = float(raw.max() - raw.min()) or 1.0
        raw_u8 = np.clip((raw - raw.min()) / span * 255.0, 0, 255).astype(np.uint8)
        matte_u8 = np.clip(np.asarray(matte) * 255.0, 0, 255).astype(np.uint8)

        cv2.imwrite(str(debug_dir / "raw_grid.png"), raw_u8)
        cv2.imwrite(str(debug_dir / "matte.png"), matte_u8)
        cutout.save(debug_dir / "cutout.png", format="PNG")
        logger.debug("composite: wrote debug outputs to %s", debug_dir)
    except Exception as exc:  # noqa: BLE001
        logger.warning("composite: failed to write debug outputs: %s", exc)
