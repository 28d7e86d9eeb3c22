"""inscert API middleware.

- Request ID tracking
- Consistent JSON error responses, including domain error translation
"""

from inscert.api.middleware.errors import (
    APIError,
    AuthorizationError,
    ConflictError,
    ErrorHandlerMiddleware,
    NotFoundError,
    ValidationAPIError,
    translate_domain_error,
)
from inscert.api.middleware.request_id import (
    RequestIDLogFilter,
    RequestIDMiddleware,
    get_request_id,
)

__all__ = [
    "APIError",
    "AuthorizationError",
    "ConflictError",
    "ErrorHandlerMiddleware",
    "NotFoundError",
    "RequestIDLogFilter",
    "RequestIDMiddleware",
    "ValidationAPIError",
    "get_request_id",
    "translate_domain_error",
]
