"""
Error Handlers

Every error body has the shape {"error": {"code", "message", "details"}}.
A failed engine operation adds "instance" when the engine attached one.
"""
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder

from ...domain.errors import DomainError
from ...utils.logger import get_logger, get_correlation_id
from ..deps import TransitionFailed

logger = get_logger(__name__)


def _respond(status_code: int, content: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={"X-Correlation-Id": get_correlation_id() or ""},
    )


async def transition_failed_handler(request: Request, exc: TransitionFailed) -> JSONResponse:
    """Failed TransitionResult, e.g. 422 with the blocked instance after a failed step"""
    error = exc.result.error
    instance = exc.result.instance
    logger.info(
        f"{request.method} {request.url.path} refused: {error.code}",
        extra={"error_code": error.code, "instance_id": instance.instance_id if instance else None}
    )
    content = error.to_dict()
    if instance is not None:
        content["instance"] = instance.model_dump(mode="json")
    return _respond(error.http_status, content)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Domain errors raised outside the engine's result boundary"""
    logger.warning(f"{exc.error_code}: {exc.message}", extra={"error_code": exc.error_code})
    return _respond(exc.http_status, exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and parameters answer 400, not FastAPI's 422"""
    errors = jsonable_encoder(exc.errors())
    logger.warning(f"Invalid request to {request.method} {request.url.path}: {len(errors)} errors")
    return _respond(status.HTTP_400_BAD_REQUEST, {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": {"errors": errors},
        }
    })


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return _respond(status.HTTP_500_INTERNAL_SERVER_ERROR, {
        "error": {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": {"correlation_id": get_correlation_id()},
        }
    })


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TransitionFailed, transition_failed_handler)
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
