"""
Global Error Handling

This module defines the error taxonomy of the editor core and the
application-wide exception handlers that turn errors into JSON responses.

Design Goals
------------
- Every failure reaches the client as a single user-facing message
- Never leak internal exception details for unexpected errors
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import json
import logging
import re
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("criador.errors")

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred."

_ERROR_ENVELOPE = re.compile(r'\{"error":\s*(.*)\}', re.DOTALL)


# ---------------------------------------------------------------------
# Error Taxonomy
# ---------------------------------------------------------------------

class CriadorError(Exception):
    """
    Base class for all user-facing failures.

    Subclasses carry a stable `error_code` and the HTTP status used when the
    error crosses the API boundary.
    """

    error_code = "error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailure(CriadorError):
    """Local precondition failed before any I/O; state unchanged."""

    error_code = "validation_failed"
    status_code = 422


class BackendError(CriadorError):
    """The AI backend or blob storage failed; state unchanged."""

    error_code = "backend_error"
    status_code = 502


class EmptyResultError(CriadorError):
    """The AI backend succeeded transport-wise but returned no image."""

    error_code = "empty_result"
    status_code = 502


class GenerationBusyError(CriadorError):
    """A generation for the same page is already in flight."""

    error_code = "generation_in_progress"
    status_code = 409


class PersistenceError(CriadorError):
    """Saving the document failed; editing continues."""

    error_code = "persistence_failed"
    status_code = 503


class ImportParseError(CriadorError):
    """An imported document could not be parsed; nothing was applied."""

    error_code = "import_failed"
    status_code = 400


class NotFoundError(CriadorError):
    error_code = "not_found"
    status_code = 404


class ConflictError(CriadorError):
    """The operation is not valid in the current application state."""

    error_code = "conflict"
    status_code = 409


# ---------------------------------------------------------------------
# Message Extraction
# ---------------------------------------------------------------------

def parse_error_message(error: Any) -> str:
    """
    Convert an arbitrary error into a single user-facing message.

    Backends often wrap their message in a JSON envelope such as
    ``{"error": {"code": 400, "message": "..."}}`` or ``{"error": "..."}``
    embedded in a longer string. When such an envelope is found, its message
    is returned; otherwise the raw error text is used.

    Parameters
    ----------
    error : Any
        A string, an exception, or anything else.

    Returns
    -------
    str
        The extracted message, never empty.
    """
    if isinstance(error, str):
        text = error
    elif isinstance(error, BaseException):
        text = getattr(error, "message", None) or str(error)
    else:
        return UNEXPECTED_ERROR_MESSAGE

    if not text:
        return UNEXPECTED_ERROR_MESSAGE

    match = _ERROR_ENVELOPE.search(text)
    if not match:
        return text

    try:
        inner = json.loads(match.group(1))
        # Envelopes sometimes carry the payload as a JSON string literal
        if isinstance(inner, str):
            try:
                inner = json.loads(inner)
            except ValueError:
                return inner
    except ValueError:
        return text

    if isinstance(inner, dict):
        nested = inner.get("error") or inner.get("message")
        if isinstance(nested, dict):
            nested = nested.get("message")
        return str(nested) if nested else text

    return str(inner) if inner else text


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def criador_error_handler(
    request: Request,
    exc: CriadorError,
) -> JSONResponse:
    """
    Render a `CriadorError` as a JSON error response.

    These errors are expected outcomes (validation, backend failures, busy
    pages) and are logged at warning level without a traceback.
    """
    logger.warning(
        "%s %s failed: %s (%s)",
        request.method,
        request.url.path,
        exc.message,
        exc.error_code,
    )

    payload: Dict[str, Any] = {
        "error": exc.error_code,
        "detail": exc.message,
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    - Ensures consistent error response format across the entire API.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
