from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import torch
from torch import Tensor


class InferenceBackend(Protocol):
    """Native runtime boundary: load a serialized model, run a forward pass."""

    def load(self, path: Path) -> object: ...
    def forward(self, module: object, tensor: Tensor) -> object: ...


class TorchModule(Protocol):
    def eval(self) -> object: ...
    def __call__(self, x: Tensor) -> object: ...


if TYPE_CHECKING:

    def _load_lite(path: Path) -> object: ...
    def _load_scripted(path: Path) -> TorchModule: ...
else:

    def _load_lite(path: Path) -> object:
        import importlib

        mobile = importlib.import_module("torch.jit.mobile")
        fn_obj = getattr(mobile, "_load_for_lite_interpreter", None)
        if not callable(fn_obj):
            raise RuntimeError("torch lite interpreter loader is not available")
        return fn_obj(path.as_posix(), map_location=torch.device("cpu"))

    def _load_scripted(path: Path) -> TorchModule:
        return torch.jit.load(path.as_posix(), map_location=torch.device("cpu"))


class TorchScriptBackend:
    """CPU TorchScript runtime; ``.ptl`` files go through the lite interpreter."""

    def load(self, path: Path) -> object:
        if path.suffix == ".ptl":
            return _load_lite(path)
        module = _load_scripted(path)
        module.eval()
        return module

    def forward(self, module: object, tensor: Tensor) -> object:
        if not callable(module):
            raise TypeError("loaded module is not callable")
        with torch.no_grad():
            return module(tensor)
