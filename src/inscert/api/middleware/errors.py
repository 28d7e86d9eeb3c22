"""JSON error responses for the HTTP API.

Every error body has the same shape:
- error: machine-readable code
- message: human-readable description
- request_id: correlation id, when known
- detail: optional structured context

Routers let service-layer exceptions propagate; translate_domain_error()
decides their status code and error code.
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from inscert.api.middleware.request_id import get_request_id
from inscert.services.certificates import CertificateError, CertificateNotFoundError
from inscert.services.expiration import ExpirationRunInProgressError
from inscert.services.lifecycle import (
    EndorsementNotAllowedError,
    ImmutableFieldViolationError,
    InvalidTransitionError,
    PermissionDeniedError,
    UnknownFieldError,
)

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Error carrying its own HTTP status and JSON error code.

    Subclasses set status_code and error as class defaults.
    """

    status_code: int = 400
    error: str = "bad_request"

    def __init__(
        self,
        message: str,
        detail: dict[str, Any] | None = None,
        *,
        error: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code

    def to_response(self) -> JSONResponse:
        return build_error_response(self.error, self.message, self.status_code, self.detail)


class NotFoundError(APIError):
    status_code = 404
    error = "not_found"

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} not found: {identifier}")


class ValidationAPIError(APIError):
    """Request is well-formed but not acceptable (422)."""

    status_code = 422
    error = "validation_error"


class AuthorizationError(APIError):
    status_code = 403
    error = "forbidden"


class ConflictError(APIError):
    """Request conflicts with the current state of the resource (409)."""

    status_code = 409
    error = "conflict"


def translate_domain_error(exc: Exception) -> APIError | None:
    """Map a service-layer exception to its APIError, or None if unmapped."""
    if isinstance(exc, CertificateNotFoundError):
        return NotFoundError("certificate", str(exc.certificate_id))
    if isinstance(exc, PermissionDeniedError):
        return AuthorizationError(
            str(exc),
            {"privilege": exc.privilege.value if exc.privilege else None},
        )
    if isinstance(exc, InvalidTransitionError):
        return ConflictError(
            exc.reason,
            {"from_status": exc.from_status.value, "to_status": exc.to_status.value},
            error="invalid_transition",
        )
    if isinstance(exc, ExpirationRunInProgressError):
        return ConflictError(
            str(exc),
            {"organization_id": str(exc.organization_id)},
            error="run_in_progress",
        )
    if isinstance(exc, ImmutableFieldViolationError):
        return ValidationAPIError(exc.reason, {"field": exc.field_name}, error="immutable_field")
    if isinstance(exc, UnknownFieldError):
        return ValidationAPIError(str(exc), {"field": exc.field_name}, error="unknown_field")
    if isinstance(exc, EndorsementNotAllowedError):
        return ValidationAPIError(
            str(exc), {"status": exc.status.value}, error="endorsement_not_allowed"
        )
    if isinstance(exc, CertificateError):
        return ValidationAPIError(str(exc))
    return None


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"error": error, "message": message}
    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id
    if detail:
        body["detail"] = detail
    return JSONResponse(status_code=status_code, content=body)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns exceptions escaping a route into JSON error responses.

    Unmapped exceptions are logged with their traceback and answered with
    a generic 500 body.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        try:
            return await call_next(request)
        except APIError as exc:
            return exc.to_response()
        except (CertificateError, ExpirationRunInProgressError) as exc:
            logger.info("Domain error on %s %s: %s", request.method, request.url.path, exc)
            return translate_domain_error(exc).to_response()
        except HTTPException as exc:
            return build_error_response("http_error", str(exc.detail), exc.status_code)
        except ValidationError as exc:
            return build_error_response(
                "validation_error",
                "Request validation failed",
                422,
                {"errors": exc.errors(include_url=False, include_context=False)},
            )
        except Exception:
            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            return build_error_response("internal_error", "An internal error occurred", 500)
