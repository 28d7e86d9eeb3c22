"""inscert service layer.

- SqlCertificateStore: certificate issuance and lifecycle-column writes
- CertificateLifecycleService: status state machine and mutable-field rules
- Membership resolvers: account, category and active-year lookups
- ExpirationService / ExpirationProcessor: group-scoped expiration runs
"""

from inscert.services.certificates import (
    CertificateDraft,
    CertificateError,
    CertificateNotFoundError,
    CertificateStore,
    SqlCertificateStore,
)
from inscert.services.expiration import (
    ExpirationConfig,
    ExpirationProcessor,
    ExpirationRunInProgressError,
    ExpirationRunResult,
    ExpirationService,
    OrganizationRunGuard,
    RunReason,
    SkipReason,
)
from inscert.services.lifecycle import (
    CertificateLifecycleService,
    TransitionOutcome,
    TransitionResult,
)

__all__ = [
    "CertificateDraft",
    "CertificateError",
    "CertificateLifecycleService",
    "CertificateNotFoundError",
    "CertificateStore",
    "ExpirationConfig",
    "ExpirationProcessor",
    "ExpirationRunInProgressError",
    "ExpirationRunResult",
    "ExpirationService",
    "OrganizationRunGuard",
    "RunReason",
    "SkipReason",
    "SqlCertificateStore",
    "TransitionOutcome",
    "TransitionResult",
]
