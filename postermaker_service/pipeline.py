"""
High-level local background-removal pipeline.

`process_image_bytes` is the entry point used by the HTTP API and the local
CLI helper:
bytes in -> preprocessing -> U^2-Net -> orientation fix -> contrast stretch
-> composite -> RGBA PNG bytes out.

`process` is the pure part of that chain and is deterministic for identical
inputs.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image

from . import config
from .compositing import composite, encode_png, maybe_dump_debug
from .matte import (
    EdgeCenterCorrector,
    NORMALIZE_EPSILON,
    OrientationCorrector,
    PassthroughCorrector,
    correct_orientation,
    normalize_contrast,
)
from .model_loader import ModelHandle, get_model_handle
from .preprocessing import load_and_preprocess_image_from_bytes

logger = logging.getLogger(__name__)


def corrector_from_settings(settings: config.Settings) -> OrientationCorrector:
    if settings.orientation_strategy == "passthrough":
        return PassthroughCorrector()
    return EdgeCenterCorrector(
        edge_fraction=settings.orientation_edge_fraction,
        min_border=settings.orientation_min_border,
        center_low=settings.orientation_center_low,
        center_high=settings.orientation_center_high,
    )


def process(
    raw_output,
    source: Image.Image,
    corrector: Optional[OrientationCorrector] = None,
    epsilon: float = NORMALIZE_EPSILON,
) -> Image.Image:
    """Turn a raw probability grid and the source photo into an RGBA cutout."""
    matte = normalize_contrast(correct_orientation(raw_output, corrector), epsilon=epsilon)
    return composite(source, matte)


def process_image_bytes(
    image_bytes: bytes,
    model_handle: Optional[ModelHandle] = None,
    settings: Optional[config.Settings] = None,
) -> bytes:
    """
    Full pipeline from raw bytes to RGBA PNG bytes.

    Raises:
        DecodeError: when the input is not a decodable image.
        ModelLoadError: when the model cannot be loaded.
    """
    settings = settings or config.get_settings()
    model_handle = model_handle or get_model_handle()
    model = model_handle.get()

    preprocessed = load_and_preprocess_image_from_bytes(image_bytes, model.input_size, model.device)
    raw_grid = model.predict(preprocessed.tensor)
    logger.debug(
        "pipeline: source=%sx%s grid=%s",
        preprocessed.orig_size[0],
        preprocessed.orig_size[1],
        np.shape(raw_grid),
    )

    corrector = corrector_from_settings(settings)
    cutout = process(raw_grid, preprocessed.original_image, corrector=corrector, epsilon=settings.matte_epsilon)

    if settings.debug:
        matte = normalize_contrast(correct_orientation(raw_grid, corrector), epsilon=settings.matte_epsilon)
        maybe_dump_debug(raw_grid, matte, cutout, Path(settings.debug_output_dir))

    return encode_png(cutout)
