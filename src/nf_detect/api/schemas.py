from __future__ import annotations

from pydantic.dataclasses import dataclass as pydantic_dataclass


@pydantic_dataclass(frozen=True)
class PredictResponse:
    label: str
    confidence: float
    advisory: str
    probs: list[float]
    model_id: str
    latency_ms: int
    generation: int


@pydantic_dataclass(frozen=True)
class DisplayStateResponse:
    generation: int
    label: str | None
    confidence: float | None
    advisory: str | None
    error_code: str | None
    message: str | None
