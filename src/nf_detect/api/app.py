from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Final

from fastapi import FastAPI, File, Header, Request, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import FormData

from ..config import Limits, Settings
from ..errors import AppError, ErrorCode, new_error, status_for
from ..logging import init_logging
from ..middleware import RequestIdMiddleware
from ..orchestrator import AppContext, DisplayState, Orchestrator, create_context
from ..request_context import request_id_var
from ..version import get_version
from .schemas import DisplayStateResponse, PredictResponse

_SUPPORTED_TYPES: Final[frozenset[str]] = frozenset(
    {"image/png", "image/jpeg", "image/jpg", "image/webp"}
)


async def _handle_app_error(_: Request, exc: Exception) -> JSONResponse:
    rid = request_id_var.get()
    if not isinstance(exc, AppError):
        body = new_error(ErrorCode.internal_error, rid, message=str(exc))
        return JSONResponse(status_code=500, content=body.to_dict())
    body = new_error(exc.code, rid, message=exc.message)
    return JSONResponse(status_code=exc.http_status, content=body.to_dict())


async def _handle_unexpected(_: Request, exc: Exception) -> JSONResponse:
    rid = request_id_var.get()
    body = new_error(ErrorCode.internal_error, rid, message="Internal server error.")
    return JSONResponse(status_code=500, content=body.to_dict())


def _register_basic(app: FastAPI, orch: Orchestrator) -> None:
    async def _healthz() -> dict[str, str]:
        return {"status": "ok"}

    async def _readyz() -> dict[str, object]:
        if orch.ready:
            return {"status": "ready"}
        err = orch.context.startup_error
        return {
            "status": "not_ready",
            "model_loaded": orch.context.engine.ready,
            "labels_loaded": bool(orch.context.labels),
            "reason": err.code.value if err is not None else None,
            "message": orch.not_ready_message(),
        }

    async def _version() -> dict[str, object]:
        v = get_version()
        return {"service": v.service, "version": v.version, "build": v.build, "commit": v.commit}

    app.add_api_route("/healthz", _healthz, methods=["GET"])
    app.add_api_route("/readyz", _readyz, methods=["GET"])
    app.add_api_route("/version", _version, methods=["GET"])


def _register_models(app: FastAPI, orch: Orchestrator) -> None:
    async def _model_active() -> dict[str, object]:
        ctx = orch.context
        handle = ctx.handle
        return {
            "model_loaded": handle.available,
            "model_id": handle.model_id,
            "model_path": handle.path.as_posix() if handle.path is not None else None,
            "error": handle.error,
            "labels": list(ctx.labels),
        }

    app.add_api_route("/v1/models/active", _model_active, methods=["GET"])


def _strict_validate_multipart(form: FormData) -> None:
    for key in form:
        if key != "file":
            raise AppError(ErrorCode.malformed_multipart, "Unexpected form field")
    n_files = len(form.getlist("file"))
    if n_files != 1:
        raise AppError(
            ErrorCode.malformed_multipart,
            "Multiple file parts not allowed" if n_files > 1 else "Missing file part",
        )


def _ensure_supported_content_type(ctype: str) -> None:
    if ctype not in _SUPPORTED_TYPES:
        raise AppError(ErrorCode.unsupported_media_type, "Only PNG, JPEG and WebP are supported")


def _raise_if_too_large(size: int, limits: Limits) -> None:
    if size > limits.max_bytes:
        raise AppError(ErrorCode.too_large, "File exceeds size limit")


def _state_body(state: DisplayState) -> DisplayStateResponse:
    return DisplayStateResponse(
        generation=state.generation,
        label=state.label,
        confidence=state.confidence,
        advisory=state.advisory,
        error_code=state.error_code.value if state.error_code is not None else None,
        message=state.message,
    )


def _register_predict(
    app: FastAPI,
    provide_orchestrator: Callable[[], Orchestrator],
    provide_limits: Callable[[], Limits],
) -> None:
    async def _predict(
        request: Request,
        file: Annotated[UploadFile, File(...)],
        content_length: int | None = Header(default=None, alias="Content-Length"),
    ) -> PredictResponse:
        orch = provide_orchestrator()
        limits = provide_limits()

        form = await request.form()
        _strict_validate_multipart(form)
        _ensure_supported_content_type((file.content_type or "").lower())
        if content_length is not None:
            _raise_if_too_large(content_length, limits)

        raw = await file.read()
        _raise_if_too_large(len(raw), limits)

        state = await run_in_threadpool(orch.handle_image, raw)
        if state.error_code is not None or state.outcome is None:
            code = state.error_code if state.error_code is not None else ErrorCode.internal_error
            raise AppError(code, state.message or "", status_for(code))
        out = state.outcome
        return PredictResponse(
            label=out.prediction.label,
            confidence=float(out.prediction.confidence),
            advisory=out.advisory.text,
            probs=[float(p) for p in out.prediction.probs],
            model_id=out.model_id,
            latency_ms=out.latency_ms,
            generation=state.generation,
        )

    async def _state() -> DisplayStateResponse:
        return _state_body(provide_orchestrator().state)

    app.add_api_route("/v1/predict", _predict, methods=["POST"], response_model=PredictResponse)
    app.add_api_route("/v1/state", _state, methods=["GET"], response_model=DisplayStateResponse)


def create_app(
    settings: Settings | None = None,
    context_provider: Callable[[], AppContext] | None = None,
) -> FastAPI:
    """Application factory.

    Parameters:
    - `settings`: optional pre-loaded settings; loaded from env/TOML when omitted.
    - `context_provider`: optional factory for the startup context, mainly for
      tests that inject a fake inference backend.
    """
    s = settings or Settings.load()
    init_logging()
    app = FastAPI(title="nf-detect", version=get_version().version)
    app.add_middleware(RequestIdMiddleware)

    context = context_provider() if context_provider is not None else create_context(s)
    orch = Orchestrator(context)
    limits = Limits.from_settings(context.settings)

    app.add_exception_handler(AppError, _handle_app_error)
    app.add_exception_handler(Exception, _handle_unexpected)

    def _provide_orchestrator() -> Orchestrator:
        return orch

    def _provide_limits() -> Limits:
        return limits

    app.state.provide_orchestrator = _provide_orchestrator
    app.state.provide_limits = _provide_limits

    _register_basic(app, orch)
    _register_models(app, orch)
    _register_predict(app, _provide_orchestrator, _provide_limits)
    return app


# Default ASGI app for uvicorn
app = create_app()
