from threading import Barrier, Thread
import time

import numpy as np
import pytest
import torch

from postermaker_service.model_loader import (
    ModelHandle,
    ModelLoadError,
    TorchMatteModel,
    get_device,
    load_u2net,
)


class _SideOutputs(torch.nn.Module):
    """Mimics U^2-Net: a fused map followed by side outputs."""

    def forward(self, x):
        fused = x.mean(dim=1, keepdim=True)
        return fused, fused * 0.0, fused * 0.0


class _Single(torch.nn.Module):
    def forward(self, x):
        return x[:, :1]


def test_handle_loads_once_under_concurrency():
    calls = []

    def slow_loader():
        calls.append(1)
        time.sleep(0.05)
        return object()

    handle = ModelHandle(slow_loader)
    barrier = Barrier(8)
    results = []

    def worker():
        barrier.wait()
        results.append(handle.get())

    threads = [Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert len({id(r) for r in results}) == 1
    assert handle.loaded


def test_handle_failure_propagates_and_stays_empty():
    def broken():
        raise ModelLoadError("nope")

    handle = ModelHandle(broken)
    with pytest.raises(ModelLoadError):
        handle.get()
    assert not handle.loaded


def test_load_requires_path():
    with pytest.raises(ModelLoadError):
        load_u2net(None)


def test_load_missing_file(tmp_path):
    with pytest.raises(ModelLoadError):
        load_u2net(tmp_path / "missing.pt")


def test_load_rejects_garbage_checkpoint(tmp_path):
    path = tmp_path / "u2net.pt"
    path.write_bytes(b"not torchscript")
    with pytest.raises(ModelLoadError):
        load_u2net(path, torch.device("cpu"))


def test_load_torchscript_and_predict(tmp_path):
    path = tmp_path / "u2net.pt"
    torch.jit.script(_SideOutputs()).save(str(path))
    model = load_u2net(path, torch.device("cpu"))
    assert model.input_size == 320

    tensor = torch.full((1, 3, 320, 320), 0.25)
    grid = model.predict(tensor)
    assert grid.shape == (320, 320)
    assert grid.dtype == np.float32
    assert np.allclose(grid, 0.25)


def test_predict_single_output():
    model = TorchMatteModel(_Single().eval(), torch.device("cpu"), input_size=16)
    grid = model.predict(torch.ones((1, 3, 16, 16)))
    assert grid.shape == (16, 16)


def test_get_device_is_torch_device():
    assert isinstance(get_device(), torch.device)
