"""
Image decoding and preprocessing for U^2-Net.

The model takes a fixed S x S RGB input scaled to [0, 1]. The upload is
squashed to that square (aspect ratio is not preserved); the original image
is kept for compositing at full resolution.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Tuple

import numpy as np
from PIL import Image
import torch


class DecodeError(ValueError):
    """Raised when upload bytes cannot be decoded as an image."""


@dataclass
class PreprocessResult:
    tensor: torch.Tensor
    original_image: Image.Image
    orig_size: Tuple[int, int]  # (width, height)
    input_size: int


def decode_image(image_bytes: bytes) -> Image.Image:
    """Decode bytes into an RGB PIL image or raise DecodeError."""
    try:
        return Image.open(BytesIO(image_bytes)).convert("RGB")
    except Exception as exc:  # noqa: BLE001
        raise DecodeError("Invalid image data") from exc


def image_to_tensor(image: Image.Image, input_size: int, device: torch.device) -> torch.Tensor:
    resized = image.resize((input_size, input_size), Image.BILINEAR)
    im_np = np.asarray(resized).astype("float32") / 255.0
    im_np = np.transpose(im_np, (2, 0, 1))  # HWC -> CHW
    return torch.from_numpy(np.ascontiguousarray(im_np)).unsqueeze(0).to(device)


def load_and_preprocess_image_from_bytes(
    image_bytes: bytes, input_size: int, device: torch.device
) -> PreprocessResult:
    """Decode an image and build the (1, 3, S, S) model input."""
    image = decode_image(image_bytes)
    tensor = image_to_tensor(image, input_size, device)
    return PreprocessResult(
        tensor=tensor,
        original_image=image,
        orig_size=image.size,
        input_size=input_size,
    )
