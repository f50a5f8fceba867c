"""
Exception handlers mapping workflow errors onto the response envelope

Every error response has the shape ``{"success": false, "message": ...}``.
"""

from typing import Dict, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..exceptions import (
    WorkflowError, WorkflowValidationError, WorkflowNotFoundError,
    SystemTemplateProtectedError, StepStateError, ConcurrentModificationError
)
from ..logging_config import get_logger


logger = get_logger(__name__)

ERROR_STATUS_MAP: Dict[Type[WorkflowError], int] = {
    WorkflowValidationError: 400,
    WorkflowNotFoundError: 404,
    SystemTemplateProtectedError: 400,
    StepStateError: 409,
    ConcurrentModificationError: 409,
}


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def status_for(exc: WorkflowError) -> int:
    for error_cls, status_code in ERROR_STATUS_MAP.items():
        if isinstance(exc, error_cls):
            return status_code
    return 500


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def register_exception_handlers(app: FastAPI) -> None:
    """Register the workflow error handlers on a FastAPI application"""

    @app.exception_handler(WorkflowError)
    async def handle_workflow_error(request: Request, exc: WorkflowError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"Workflow error [{exc.code}]: {exc.message}")
        return error_response(status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return error_response(400, _validation_message(exc))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {type(exc).__name__}: {exc}")
        return error_response(500, "An internal error occurred")
