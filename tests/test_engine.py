from __future__ import annotations

import threading
from pathlib import Path

import pytest
import torch
from _fakes import FakeBackend, make_settings, write_assets

from nf_detect.errors import ErrorCode, InferenceError, ModelLoadError, ResourceMissing
from nf_detect.inference.engine import InferenceEngine, infer
from nf_detect.inference.types import ModelHandle


def test_infer_without_model_is_rejected() -> None:
    with pytest.raises(InferenceError) as ei:
        infer(ModelHandle.unavailable("x"), FakeBackend(), torch.zeros((1, 3, 320, 320)))
    assert ei.value.code is ErrorCode.service_not_ready


def test_infer_wraps_native_errors() -> None:
    handle = ModelHandle(module=object(), path=None, model_id="m")
    with pytest.raises(InferenceError) as ei:
        infer(handle, FakeBackend(fail_forward=True), torch.zeros((1, 3, 320, 320)))
    assert ei.value.code is ErrorCode.inference_failed
    assert "native forward crashed" in ei.value.message


def test_submit_load_then_infer(tmp_path: Path) -> None:
    write_assets(tmp_path)
    backend = FakeBackend(logits=(0.1, 0.2, 0.3, 0.4))
    eng = InferenceEngine(make_settings(tmp_path), backend)
    assert eng.ready is False

    handle = eng.submit_load().result(timeout=5.0)
    assert handle.available and eng.ready
    assert eng.model_id == handle.model_id

    logits = eng.submit_infer(torch.zeros((1, 3, 320, 320))).result(timeout=5.0)
    assert logits == pytest.approx([0.1, 0.2, 0.3, 0.4])
    assert backend.shapes == [(1, 3, 320, 320)]


def test_failed_load_marks_handle_unavailable(tmp_path: Path) -> None:
    write_assets(tmp_path)
    eng = InferenceEngine(make_settings(tmp_path), FakeBackend(fail_load=True))
    with pytest.raises(ModelLoadError):
        eng.submit_load().result(timeout=5.0)
    assert eng.ready is False
    assert eng.handle.error is not None and "rejected" in eng.handle.error

    with pytest.raises(InferenceError):
        eng.submit_infer(torch.zeros((1, 3, 320, 320))).result(timeout=5.0)


def test_missing_model_asset(tmp_path: Path) -> None:
    eng = InferenceEngine(make_settings(tmp_path), FakeBackend())
    with pytest.raises(ResourceMissing):
        eng.load()
    assert eng.ready is False


def test_infer_wraps_any_native_error_type() -> None:
    handle = ModelHandle(module=object(), path=None, model_id="m")
    backend = FakeBackend(forward_error=KeyError("output0"))
    with pytest.raises(InferenceError) as ei:
        infer(handle, backend, torch.zeros((1, 3, 320, 320)))
    assert ei.value.code is ErrorCode.inference_failed
    assert isinstance(ei.value.__cause__, KeyError)


def test_load_finishing_after_mark_unavailable_is_discarded(tmp_path: Path) -> None:
    write_assets(tmp_path)
    gate = threading.Event()
    eng = InferenceEngine(make_settings(tmp_path, threads=1), FakeBackend(load_gate=gate))
    fut = eng.submit_load()
    eng.mark_unavailable("Model load timed out")
    gate.set()
    late = fut.result(timeout=5.0)
    assert late.available
    assert eng.ready is False
    assert eng.handle.error == "Model load timed out"

    # An explicit reload after the timeout is still honored
    assert eng.load().available and eng.ready
