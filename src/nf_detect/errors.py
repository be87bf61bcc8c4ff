from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final

from fastapi import status


class ErrorCode(str, Enum):
    resource_missing = "resource_missing"
    model_load_failed = "model_load_failed"
    invalid_image = "invalid_image"
    inference_failed = "inference_failed"
    timeout = "timeout"
    service_not_ready = "service_not_ready"
    unsupported_media_type = "unsupported_media_type"
    too_large = "too_large"
    malformed_multipart = "malformed_multipart"
    internal_error = "internal_error"


_DEFAULT_MESSAGE: Final[dict[ErrorCode, str]] = {
    ErrorCode.resource_missing: "A bundled resource could not be read.",
    ErrorCode.model_load_failed: "Failed to load the model.",
    ErrorCode.invalid_image: "Failed to decode image.",
    ErrorCode.inference_failed: "Prediction failed.",
    ErrorCode.timeout: "Prediction timed out.",
    ErrorCode.service_not_ready: "Model is not loaded. Predictions are disabled.",
    ErrorCode.unsupported_media_type: "Unsupported media type.",
    ErrorCode.too_large: "File exceeds size limit.",
    ErrorCode.malformed_multipart: "Malformed multipart body.",
    ErrorCode.internal_error: "Internal server error.",
}


@dataclass(frozen=True)
class ErrorResponse:
    code: ErrorCode
    message: str
    request_id: str

    def to_dict(self) -> dict[str, str]:
        return {
            "code": self.code.value,
            "message": self.message,
            "request_id": self.request_id,
        }


class AppError(Exception):
    def __init__(self, code: ErrorCode, message: str, http_status: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status if http_status is not None else status_for(code)


class ResourceMissing(AppError):
    """A bundled asset (labels or model) could not be read."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.resource_missing, message)


class ModelLoadError(AppError):
    """The model copy could not be written or the runtime rejected it."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.model_load_failed, message)


class DecodeError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.invalid_image, message)


class InferenceError(AppError):
    """Forward pass failed, timed out, or was attempted without a model."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.inference_failed) -> None:
        super().__init__(code, message)


def new_error(code: ErrorCode, request_id: str, message: str | None = None) -> ErrorResponse:
    msg = message if message is not None else _DEFAULT_MESSAGE.get(code, "")
    return ErrorResponse(code=code, message=msg, request_id=request_id)


def default_message(code: ErrorCode) -> str:
    return _DEFAULT_MESSAGE.get(code, "")


def status_for(code: ErrorCode) -> int:
    if code is ErrorCode.invalid_image:
        return status.HTTP_400_BAD_REQUEST
    if code is ErrorCode.unsupported_media_type:
        return status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    if code is ErrorCode.too_large:
        return status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    if code is ErrorCode.malformed_multipart:
        return status.HTTP_400_BAD_REQUEST
    if code is ErrorCode.timeout:
        return status.HTTP_504_GATEWAY_TIMEOUT
    if code in (
        ErrorCode.service_not_ready,
        ErrorCode.resource_missing,
        ErrorCode.model_load_failed,
    ):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR
