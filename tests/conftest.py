from io import BytesIO

import numpy as np
from PIL import Image
import pytest
import torch

from postermaker_service import config
from postermaker_service.model_loader import ModelHandle


class FakeMatteModel:
    """Stands in for U^2-Net: returns a fixed grid and records its inputs."""

    def __init__(self, grid: np.ndarray):
        self.grid = np.asarray(grid, dtype=np.float32)
        self.input_size = self.grid.shape[0]
        self.device = torch.device("cpu")
        self.calls = []

    def predict(self, tensor):
        self.calls.append(tuple(tensor.shape))
        return self.grid.copy()


def centered_subject_grid(side: int = 32, inverted: bool = False) -> np.ndarray:
    grid = np.full((side, side), 0.2, dtype=np.float32)
    lo, hi = side // 4, side - side // 4
    grid[lo:hi, lo:hi] = 0.7
    if inverted:
        grid = 1.0 - grid
    return grid


def make_image_bytes(width: int = 40, height: int = 30, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    rng = np.random.default_rng(0)
    channels = 4 if mode == "RGBA" else 3
    pixels = rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)
    buf = BytesIO()
    Image.fromarray(pixels).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def settings(tmp_path):
    return config.Settings(
        _env_file=None,
        removal_backend="local",
        remove_bg_api_key="test-key",
        static_dir=tmp_path / "dist",
        debug_output_dir=tmp_path / "debug",
    )


@pytest.fixture
def fake_model():
    return FakeMatteModel(centered_subject_grid())


@pytest.fixture
def model_handle(fake_model):
    return ModelHandle(lambda: fake_model)
