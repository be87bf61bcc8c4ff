from __future__ import annotations

import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Final

import torch
from torch import Tensor

from ..config import Settings
from ..errors import AppError, ErrorCode, InferenceError
from ..logging import log_event
from ..postprocess import coerce_logits
from .backend import InferenceBackend, TorchScriptBackend
from .loader import load_model
from .types import Logits, ModelHandle

_NOT_LOADED: Final[str] = "model not loaded"


def infer(handle: ModelHandle, backend: InferenceBackend, tensor: Tensor) -> Logits:
    if not handle.available:
        raise InferenceError(_NOT_LOADED, code=ErrorCode.service_not_ready)
    try:
        out = backend.forward(handle.module, tensor.to(dtype=torch.float32))
    except Exception as exc:
        # The native runtime may raise any type
        raise InferenceError(f"forward pass failed: {exc}") from exc
    return coerce_logits(out)


class InferenceEngine:
    """Bounded thread-pool wrapper around an inference backend.

    The model handle is written once by :meth:`load` (or the future returned
    by :meth:`submit_load`) and only read afterwards. A load that finishes
    after :meth:`mark_unavailable` is discarded.
    """

    def __init__(self, settings: Settings, backend: InferenceBackend | None = None) -> None:
        self._settings = settings
        self._backend: InferenceBackend = backend if backend is not None else TorchScriptBackend()
        self._pool = _make_pool(settings)
        self._handle_lock = threading.Lock()
        self._handle = ModelHandle.unavailable("not loaded")
        self._load_epoch = 0
        torch.set_num_threads(1)

    @property
    def backend(self) -> InferenceBackend:
        return self._backend

    @property
    def handle(self) -> ModelHandle:
        return self._handle

    @property
    def ready(self) -> bool:
        return self._handle.available

    @property
    def model_id(self) -> str | None:
        return self._handle.model_id

    def load(self, asset_path: Path | None = None) -> ModelHandle:
        """Load the model synchronously.

        On failure the handle is set to an unavailable state and the error is
        re-raised for the caller to report.
        """
        return self._load(asset_path, self._current_epoch())

    def _load(self, asset_path: Path | None, epoch: int) -> ModelHandle:
        path = asset_path if asset_path is not None else self._settings.model.model_path
        try:
            handle = load_model(path, self._settings.app.cache_dir, self._backend)
        except AppError as exc:
            self._set_handle(ModelHandle.unavailable(exc.message), epoch)
            raise
        if not self._set_handle(handle, epoch):
            log_event("late_load_discarded", {"model_id": handle.model_id or ""})
        return handle

    def submit_load(self, asset_path: Path | None = None) -> Future[ModelHandle]:
        return self._pool.submit(self._load, asset_path, self._current_epoch())

    def submit_infer(self, tensor: Tensor) -> Future[Logits]:
        return self._pool.submit(self._infer_impl, tensor)

    def _infer_impl(self, tensor: Tensor) -> Logits:
        return infer(self._handle, self._backend, tensor)

    def mark_unavailable(self, reason: str) -> None:
        with self._handle_lock:
            self._load_epoch += 1
            self._handle = ModelHandle.unavailable(reason)

    def _current_epoch(self) -> int:
        with self._handle_lock:
            return self._load_epoch

    def _set_handle(self, handle: ModelHandle, epoch: int) -> bool:
        with self._handle_lock:
            if epoch != self._load_epoch:
                return False
            self._handle = handle
            return True


def _make_pool(settings: Settings) -> ThreadPoolExecutor:
    if settings.app.threads == 0:
        size = min(8, os.cpu_count() or 1)
    else:
        size = settings.app.threads
    return ThreadPoolExecutor(max_workers=size, thread_name_prefix="predict")
