from __future__ import annotations

import os
import tempfile
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Final

_DEFAULT_CONFIG_PATH: Final[Path] = Path("config/nf_detect.toml")


@dataclass(frozen=True)
class AppConfig:
    # Writable, app-private location for the runtime copy of the model
    cache_dir: Path = Path(tempfile.gettempdir()) / "nf_detect"
    threads: int = 0
    port: int = 8081


@dataclass(frozen=True)
class ModelConfig:
    assets_dir: Path = Path("assets/models")
    model_file: str = "nf_cls_ts.ptl"
    labels_file: str = "labels.txt"
    predict_timeout_seconds: float = 10.0
    load_timeout_seconds: float = 60.0
    max_image_mb: int = 16

    @property
    def model_path(self) -> Path:
        return self.assets_dir / self.model_file

    @property
    def labels_path(self) -> Path:
        return self.assets_dir / self.labels_file


@dataclass(frozen=True)
class Settings:
    app: AppConfig
    model: ModelConfig

    @staticmethod
    def _toml_path() -> Path:
        env_val = os.getenv("NF_DETECT_CONFIG")
        if env_val:
            return Path(env_val)
        return _DEFAULT_CONFIG_PATH

    @classmethod
    def load(cls) -> Settings:
        # Env first, then TOML overrides when the file exists
        base = cls(app=_load_app_from_env(), model=_load_model_from_env())
        cfg_path = cls._toml_path()
        if not cfg_path.exists():
            return base
        try:
            raw: object = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise RuntimeError(f"Failed to read config TOML: {cfg_path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise RuntimeError(f"Invalid TOML config: {cfg_path}") from exc
        return cls(
            app=_merge_app(base.app, _toml_table(raw, "app")),
            model=_merge_model(base.model, _toml_table(raw, "model")),
        )


def _load_app_from_env() -> AppConfig:
    a = AppConfig()
    cd = os.getenv("APP__CACHE_DIR")
    th = os.getenv("APP__THREADS")
    pt = os.getenv("APP__PORT")
    if cd:
        a = replace(a, cache_dir=Path(cd))
    if th is not None and th.isdigit():
        a = replace(a, threads=int(th))
    if pt is not None and pt.isdigit():
        a = replace(a, port=_checked_port(int(pt), "APP__PORT"))
    return a


def _load_model_from_env() -> ModelConfig:
    m = ModelConfig()
    ad = os.getenv("MODEL__ASSETS_DIR")
    mf = os.getenv("MODEL__MODEL_FILE")
    lf = os.getenv("MODEL__LABELS_FILE")
    pto = os.getenv("MODEL__PREDICT_TIMEOUT_SECONDS")
    lto = os.getenv("MODEL__LOAD_TIMEOUT_SECONDS")
    mb = os.getenv("MODEL__MAX_IMAGE_MB")
    if ad:
        m = replace(m, assets_dir=Path(ad))
    if mf:
        m = replace(m, model_file=mf)
    if lf:
        m = replace(m, labels_file=lf)
    if pto is not None:
        pt_s = _positive(float(pto), "MODEL__PREDICT_TIMEOUT_SECONDS")
        m = replace(m, predict_timeout_seconds=pt_s)
    if lto is not None:
        lt_s = _positive(float(lto), "MODEL__LOAD_TIMEOUT_SECONDS")
        m = replace(m, load_timeout_seconds=lt_s)
    if mb is not None:
        m = replace(m, max_image_mb=_positive_int(int(mb), "MODEL__MAX_IMAGE_MB"))
    return m


def _merge_app(base: AppConfig, data: dict[str, object]) -> AppConfig:
    out = base
    if "cache_dir" in data:
        out = replace(out, cache_dir=Path(str(data["cache_dir"])))
    if "threads" in data:
        out = replace(out, threads=int(str(data["threads"])))
    if "port" in data:
        out = replace(out, port=_checked_port(int(str(data["port"])), "port"))
    return out


def _merge_model(base: ModelConfig, data: dict[str, object]) -> ModelConfig:
    out = base
    if "assets_dir" in data:
        out = replace(out, assets_dir=Path(str(data["assets_dir"])))
    if "model_file" in data:
        out = replace(out, model_file=str(data["model_file"]))
    if "labels_file" in data:
        out = replace(out, labels_file=str(data["labels_file"]))
    if "predict_timeout_seconds" in data:
        v = _positive(float(str(data["predict_timeout_seconds"])), "predict_timeout_seconds")
        out = replace(out, predict_timeout_seconds=v)
    if "load_timeout_seconds" in data:
        v = _positive(float(str(data["load_timeout_seconds"])), "load_timeout_seconds")
        out = replace(out, load_timeout_seconds=v)
    if "max_image_mb" in data:
        mb = _positive_int(int(str(data["max_image_mb"])), "max_image_mb")
        out = replace(out, max_image_mb=mb)
    return out


def _toml_table(raw: object, key: str) -> dict[str, object]:
    if isinstance(raw, dict):
        tab: object = raw.get(key, {})
        if isinstance(tab, dict):
            return {str(k): v for k, v in tab.items()}
    return {}


def _checked_port(port: int, name: str) -> int:
    if not (1 <= port <= 65535):
        raise RuntimeError(f"{name} out of range")
    return port


def _positive(value: float, name: str) -> float:
    if value <= 0.0:
        raise RuntimeError(f"{name} must be > 0")
    return value


def _positive_int(value: int, name: str) -> int:
    if value <= 0:
        raise RuntimeError(f"{name} must be > 0")
    return value


@dataclass(frozen=True)
class Limits:
    max_bytes: int

    @staticmethod
    def from_settings(s: Settings) -> Limits:
        return Limits(max_bytes=int(s.model.max_image_mb) * 1024 * 1024)
