"""JSON error payloads shared by the API routes."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from models.errors import ValidationError


def error_response(status_code: int, message: str) -> JSONResponse:
    """Return the structured ``{"success": false, "error": ...}`` payload."""
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def exception_response(exc: Exception) -> JSONResponse:
    """Map a gallery exception to its HTTP status and structured payload."""
    status_code = 400 if isinstance(exc, ValidationError) else 500
    return error_response(status_code, str(exc) or exc.__class__.__name__)


def describe_validation_error(exc: RequestValidationError) -> str:
    """Summarize the first request validation error, e.g. ``"imageBase64: Input should be a valid string"``."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(part for part in first.get("loc", ()) if isinstance(part, str) and part != "body")
    return f"{field or 'Request body'}: {first.get('msg', 'invalid value')}"


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed bodies and wrongly typed fields with 400 instead of FastAPI's 422."""
    return error_response(400, describe_validation_error(exc))
