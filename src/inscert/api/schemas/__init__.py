"""Request and response schemas for the inscert API."""

from inscert.api.schemas.admin import ExpirationTriggerRequest
from inscert.api.schemas.certificates import (
    CertificateResponse,
    CertificateUpdateRequest,
    StatusChangeRequest,
    StatusChangeResponse,
)

__all__ = [
    "CertificateResponse",
    "CertificateUpdateRequest",
    "ExpirationTriggerRequest",
    "StatusChangeRequest",
    "StatusChangeResponse",
]
