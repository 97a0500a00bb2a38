"""ErrorResponse helpers shared by the route modules."""

from __future__ import annotations

from fastapi.responses import JSONResponse

from modelmagic.models.contracts import ErrorResponse, TransitionError, TransitionErrorCode

_STATUS_FOR_CODE: dict[TransitionErrorCode, int] = {
    TransitionErrorCode.NOT_FOUND: 404,
    TransitionErrorCode.INVALID_TRANSITION: 400,
    TransitionErrorCode.TRANSITION_CONFLICT: 409,
    TransitionErrorCode.PERSISTENCE_FAILURE: 500,
}

_RETRYABLE = {TransitionErrorCode.TRANSITION_CONFLICT, TransitionErrorCode.PERSISTENCE_FAILURE}


def error(status: int, code: str, message: str, *, retryable: bool = False, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=code, message=message, retryable=retryable, detail=detail).model_dump(),
    )


NOT_FOUND = ("project_not_found", "Project not found")


def transition_error(err: TransitionError | None) -> JSONResponse:
    if err is None:
        return error(500, "internal_error", "Transition failed without an error", retryable=True)
    detail = None
    if err.from_status is not None and err.to_status is not None:
        detail = f"{err.from_status.value}->{err.to_status.value}"
    return error(
        _STATUS_FOR_CODE[err.code],
        err.code.value,
        err.message,
        retryable=err.code in _RETRYABLE,
        detail=detail,
    )
