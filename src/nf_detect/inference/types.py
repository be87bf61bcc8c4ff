from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# Index i names the class scored at logit position i
LabelSet = tuple[str, ...]
Logits = list[float]


@dataclass(frozen=True)
class ModelHandle:
    module: object | None
    path: Path | None
    model_id: str | None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.module is not None

    @staticmethod
    def unavailable(reason: str) -> ModelHandle:
        return ModelHandle(module=None, path=None, model_id=None, error=reason)


@dataclass(frozen=True)
class Prediction:
    label: str
    confidence: float
    index: int
    probs: tuple[float, ...]
