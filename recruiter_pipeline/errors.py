"""Error taxonomy shared by the service layer, the HTTP API and the API client."""
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class PipelineError(Exception):
    """Base class for every failure the pipeline core reports."""

    code = "PIPELINE_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload = {"success": False, "message": self.message, "error": self.code}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class NotFoundError(PipelineError):
    """Referenced pipeline, membership or record does not exist."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(PipelineError):
    """Duplicate pipeline, duplicate membership, duplicate identity or a lost write race."""

    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class InvalidTransitionError(PipelineError):
    """Requested stage is not part of the stage enumeration."""

    code = "INVALID_TRANSITION"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStateError(PipelineError):
    """Operation precondition violated."""

    code = "INVALID_STATE"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ValidationError(PipelineError):
    """Missing or malformed fields."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NetworkError(PipelineError):
    """Transport failure between the client and the API."""

    code = "NETWORK_ERROR"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ServerError(PipelineError):
    """Backend failure."""

    code = "SERVER_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        NotFoundError,
        ConflictError,
        InvalidTransitionError,
        InvalidStateError,
        ValidationError,
        NetworkError,
        ServerError,
    )
}

ERRORS_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: ValidationError,
    status.HTTP_404_NOT_FOUND: NotFoundError,
    status.HTTP_409_CONFLICT: ConflictError,
    status.HTTP_422_UNPROCESSABLE_ENTITY: ValidationError,
}


def error_from_response(status_code: int, payload: Any) -> PipelineError:
    """Rebuild the typed error for a non-2xx API response."""
    message = f"Request failed with status {status_code}"
    details = None
    code = None
    if isinstance(payload, dict):
        message = payload.get("message") or message
        details = payload.get("details")
        code = payload.get("error")

    if code in ERRORS_BY_CODE:
        return ERRORS_BY_CODE[code](message, details)
    if status_code >= 500:
        return ServerError(message, details)
    return ERRORS_BY_STATUS.get(status_code, PipelineError)(message, details)


def validation_error_from_pydantic(exc, message: str = "Invalid fields") -> ValidationError:
    """Convert a pydantic ValidationError into ours, listing the offending fields."""
    fields = []
    for err in exc.errors():
        fields.append({
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", ""),
        })
    return ValidationError(message, {"fields": fields})


async def pipeline_error_handler(_: Request, exc: PipelineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()))


async def request_validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    error = validation_error_from_pydantic(exc, "Invalid request")
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_payload()))
