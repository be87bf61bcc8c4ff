from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import TimeoutError as _FutTimeout
from dataclasses import dataclass

from .advisory import Advisory, advise
from .config import Settings
from .errors import AppError, ErrorCode, InferenceError, ModelLoadError, default_message
from .inference.backend import InferenceBackend
from .inference.engine import InferenceEngine
from .inference.types import LabelSet, ModelHandle, Prediction
from .labels import load_labels
from .logging import get_logger, log_event
from .postprocess import classify
from .preprocess import preprocess


@dataclass(frozen=True)
class AppContext:
    """Startup-scoped state shared by every prediction.

    Built once by :func:`create_context` and passed to the orchestrator.
    Labels and the model handle are not modified after construction.
    """

    settings: Settings
    labels: LabelSet
    engine: InferenceEngine
    startup_error: AppError | None = None

    @property
    def handle(self) -> ModelHandle:
        return self.engine.handle

    @property
    def ready(self) -> bool:
        return bool(self.labels) and self.engine.ready


def create_context(settings: Settings, backend: InferenceBackend | None = None) -> AppContext:
    engine = InferenceEngine(settings, backend)
    try:
        labels = load_labels(settings.model.labels_path)
    except AppError as exc:
        _log_startup_failure(exc)
        engine.mark_unavailable(exc.message)
        return AppContext(settings=settings, labels=(), engine=engine, startup_error=exc)

    fut = engine.submit_load()
    try:
        fut.result(timeout=float(settings.model.load_timeout_seconds))
    except _FutTimeout:
        fut.cancel()
        err = ModelLoadError("Model load timed out")
        _log_startup_failure(err)
        engine.mark_unavailable(err.message)
        return AppContext(settings=settings, labels=labels, engine=engine, startup_error=err)
    except AppError as exc:
        # engine.load already marked the handle unavailable
        _log_startup_failure(exc)
        return AppContext(settings=settings, labels=labels, engine=engine, startup_error=exc)

    log_event("startup_ready", {"model_id": engine.model_id or ""})
    return AppContext(settings=settings, labels=labels, engine=engine)


def _log_startup_failure(exc: AppError) -> None:
    get_logger().error("startup_failed code=%s detail=%r", exc.code.value, exc.message)


@dataclass(frozen=True)
class PredictOutcome:
    prediction: Prediction
    advisory: Advisory
    model_id: str
    latency_ms: int


@dataclass(frozen=True)
class DisplayState:
    """What the presentation layer shows: label, confidence and advisory text,
    or an error message. A fresh state with no outcome means "cleared".
    """

    generation: int = 0
    outcome: PredictOutcome | None = None
    error_code: ErrorCode | None = None
    message: str | None = None

    @property
    def label(self) -> str | None:
        return self.outcome.prediction.label if self.outcome is not None else None

    @property
    def confidence(self) -> float | None:
        return self.outcome.prediction.confidence if self.outcome is not None else None

    @property
    def advisory(self) -> str | None:
        return self.outcome.advisory.text if self.outcome is not None else None


class Orchestrator:
    def __init__(self, context: AppContext) -> None:
        self._ctx = context
        self._lock = threading.Lock()
        self._generation = 0
        self._state = DisplayState()

    @property
    def context(self) -> AppContext:
        return self._ctx

    @property
    def ready(self) -> bool:
        return self._ctx.ready

    @property
    def state(self) -> DisplayState:
        with self._lock:
            return self._state

    def not_ready_message(self) -> str:
        err = self._ctx.startup_error
        base = default_message(ErrorCode.service_not_ready)
        return f"{base} {err.message}" if err is not None else base

    def predict(self, raw: bytes) -> PredictOutcome:
        """Run one image through preprocess, inference and postprocessing.

        Raises the typed ``AppError`` subclasses; does not touch display state.
        """
        if not self.ready:
            raise InferenceError(self.not_ready_message(), code=ErrorCode.service_not_ready)
        t0 = time.perf_counter()
        tensor = preprocess(raw)
        fut = self._ctx.engine.submit_infer(tensor)
        try:
            logits = fut.result(timeout=float(self._ctx.settings.model.predict_timeout_seconds))
        except _FutTimeout:
            fut.cancel()
            raise InferenceError("Prediction timed out", code=ErrorCode.timeout) from None
        prediction = classify(logits, self._ctx.labels)
        advisory = advise(prediction.label, prediction.confidence)
        dt_ms = int((time.perf_counter() - t0) * 1000.0)
        model_id = self._ctx.handle.model_id or ""
        log_event(
            "predict_finished",
            {
                "latency_ms": dt_ms,
                "label": prediction.label,
                "confidence": float(prediction.confidence),
                "model_id": model_id,
            },
        )
        return PredictOutcome(
            prediction=prediction, advisory=advisory, model_id=model_id, latency_ms=dt_ms
        )

    def begin(self) -> int:
        """Start a new request: bump the generation and clear displayed results."""
        with self._lock:
            self._generation += 1
            self._state = DisplayState(generation=self._generation)
            return self._generation

    def publish(self, state: DisplayState) -> bool:
        with self._lock:
            if state.generation != self._generation:
                log_event("stale_result_dropped", {"generation": state.generation})
                return False
            self._state = state
            return True

    def handle_image(self, raw: bytes) -> DisplayState:
        """Presentation boundary: never raises for the known error taxonomy."""
        gen = self.begin()
        try:
            outcome = self.predict(raw)
        except AppError as exc:
            log_event(
                "predict_failed",
                {"code": exc.code.value, "generation": gen},
                level=logging.WARNING,
            )
            state = DisplayState(generation=gen, error_code=exc.code, message=exc.message)
        else:
            state = DisplayState(generation=gen, outcome=outcome)
        self.publish(state)
        return state
