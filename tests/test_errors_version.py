from __future__ import annotations

import io
import logging

import pytest

from nf_detect.errors import (
    AppError,
    DecodeError,
    ErrorCode,
    InferenceError,
    ModelLoadError,
    ResourceMissing,
    new_error,
    status_for,
)
from nf_detect.logging import _JsonFormatter, get_logger
from nf_detect.version import get_version


def test_status_mapping() -> None:
    assert status_for(ErrorCode.invalid_image) == 400
    assert status_for(ErrorCode.unsupported_media_type) == 415
    assert status_for(ErrorCode.too_large) == 413
    assert status_for(ErrorCode.timeout) == 504
    assert status_for(ErrorCode.service_not_ready) == 503
    assert status_for(ErrorCode.model_load_failed) == 503
    assert status_for(ErrorCode.inference_failed) == 500


def test_typed_errors_carry_codes() -> None:
    assert ResourceMissing("x").code is ErrorCode.resource_missing
    assert ModelLoadError("x").code is ErrorCode.model_load_failed
    assert DecodeError("x").code is ErrorCode.invalid_image
    assert InferenceError("x").code is ErrorCode.inference_failed
    err = InferenceError("slow", code=ErrorCode.timeout)
    assert isinstance(err, AppError) and err.http_status == 504


def test_new_error_default_message() -> None:
    e = new_error(ErrorCode.timeout, "abc-123")
    assert e.message != "" and e.request_id == "abc-123"
    assert e.to_dict()["code"] == "timeout"


def test_version_fallback_logs_and_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    import importlib

    class _NotFound(Exception):
        pass

    def _raise(_: str) -> str:
        raise _NotFound()

    meta = importlib.import_module("importlib.metadata")
    monkeypatch.setattr(meta, "version", _raise, raising=False)
    monkeypatch.setattr(meta, "PackageNotFoundError", _NotFound, raising=False)

    buf = io.StringIO()
    h = logging.StreamHandler(buf)
    h.setFormatter(_JsonFormatter())
    logger = get_logger()
    logger.addHandler(h)
    try:
        v = get_version()
    finally:
        logger.removeHandler(h)
    assert v.service == "nf-detect"
    assert v.version == "0.1.0"
    assert "pkg_version_fallback" in buf.getvalue()
