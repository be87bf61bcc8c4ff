from __future__ import annotations

import hashlib
from pathlib import Path

from ..errors import ModelLoadError, ResourceMissing
from ..logging import get_logger
from .backend import InferenceBackend
from .types import ModelHandle


def _read_asset(asset_path: Path) -> bytes:
    try:
        return asset_path.read_bytes()
    except OSError as exc:
        raise ResourceMissing(f"model asset unreadable: {asset_path.as_posix()}") from exc


def materialize_model(asset_path: Path, cache_dir: Path) -> Path:
    """Copy the packaged model into a writable location and return the copy's path.

    The runtime wants a filesystem path, and bundled assets may not be one. The
    copy always lands at ``cache_dir / asset_path.name`` and is overwritten on
    each call.
    """
    data = _read_asset(asset_path)
    dest = cache_dir / asset_path.name
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
    except OSError as exc:
        raise ModelLoadError(f"cannot write model copy: {dest.as_posix()}") from exc
    get_logger().info("model_copied path=%s size_bytes=%d", dest.as_posix(), len(data))
    return dest


def model_id_for(path: Path) -> str:
    digest = hashlib.sha256(path.read_bytes()).hexdigest()
    return f"{path.stem}-{digest[:12]}"


def load_model(asset_path: Path, cache_dir: Path, backend: InferenceBackend) -> ModelHandle:
    local = materialize_model(asset_path, cache_dir)
    try:
        module = backend.load(local)
    except Exception as exc:
        # The native runtime may raise any type for a file it cannot use
        raise ModelLoadError(f"runtime rejected model: {exc}") from exc
    if module is None:
        raise ModelLoadError("runtime returned no module")
    try:
        model_id = model_id_for(local)
    except OSError as exc:
        raise ModelLoadError(f"cannot read model copy: {local.as_posix()}") from exc
    get_logger().info("model_loaded model_id=%s", model_id)
    return ModelHandle(module=module, path=local, model_id=model_id)
