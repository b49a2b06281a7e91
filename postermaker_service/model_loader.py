"""
Model loading utilities for the local U^2-Net backend.

The loader:
 - loads a TorchScript U^2-Net export from `U2NET_MODEL_PATH`,
 - wraps it so callers get a plain S x S probability grid back,
 - keeps a single shared instance per process behind `ModelHandle`.

Callers receive the handle explicitly (see `pipeline.process_image_bytes`),
so tests can hand in a handle wrapping a fake model.
"""

from __future__ import annotations

from functools import lru_cache
import logging
from pathlib import Path
from threading import Lock
from typing import Callable, Optional

import numpy as np
import torch

from . import config

logger = logging.getLogger(__name__)

U2NET_INPUT_SIZE = 320

# Prefer CUDA -> Apple MPS -> CPU to support both GPU servers and local macOS dev.
if torch.cuda.is_available():
    _DEVICE = torch.device("cuda")
elif torch.backends.mps.is_available():  # type: ignore[attr-defined]
    _DEVICE = torch.device("mps")
else:
    _DEVICE = torch.device("cpu")


class ModelLoadError(RuntimeError):
    """The saliency model is unavailable or failed to load."""


def get_device() -> torch.device:
    """Return the inference device (prefers CUDA when available)."""
    return _DEVICE


class TorchMatteModel:
    """Adapter from a TorchScript saliency network to a raw probability grid."""

    def __init__(self, module: torch.nn.Module, device: torch.device, input_size: int = U2NET_INPUT_SIZE):
        self.module = module
        self.device = device
        self.input_size = input_size

    def predict(self, tensor: torch.Tensor) -> np.ndarray:
        with torch.no_grad():
            output = self.module(tensor)
        # U^2-Net returns the fused map first, followed by six side outputs.
        if isinstance(output, (tuple, list)):
            output = output[0]
        return output.squeeze().detach().cpu().numpy().astype(np.float32)


def load_u2net(model_path: Optional[Path], device: Optional[torch.device] = None) -> TorchMatteModel:
    device = device or _DEVICE
    if model_path is None:
        raise ModelLoadError("U2NET_MODEL_PATH is required for the local backend")
    model_path = Path(model_path)
    if not model_path.exists():
        raise ModelLoadError(f"U^2-Net checkpoint not found at {model_path}")

    logger.info("Loading TorchScript U^2-Net from %s", model_path)
    try:
        module = torch.jit.load(str(model_path), map_location=device)
    except Exception as exc:  # noqa: BLE001
        raise ModelLoadError(f"Failed to load U^2-Net from {model_path}: {exc}") from exc
    module.eval()
    return TorchMatteModel(module, device)


class ModelHandle:
    """
    Lazily initialized, process-scoped model resource.

    `get()` loads the model once on first access; concurrent first callers
    block on the lock and share the same instance. A failed load leaves the
    handle empty and re-raises to the caller.
    """

    def __init__(self, loader: Callable[[], object]):
        self._loader = loader
        self._model = None
        self._lock = Lock()

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def get(self):
        if self._model is not None:
            return self._model

        with self._lock:
            if self._model is None:
                self._model = self._loader()
                logger.info("Saliency model ready: %s", type(self._model).__name__)
        return self._model


@lru_cache()
def get_model_handle() -> ModelHandle:
    """Return the process-wide handle for the configured U^2-Net model."""
    settings = config.get_settings()
    return ModelHandle(lambda: load_u2net(settings.u2net_model_path, _DEVICE))
