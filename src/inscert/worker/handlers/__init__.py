"""Job handlers for the inscert worker.

- expiry: group-scoped certificate expiration sweep
"""

from inscert.worker.handlers.expiry import expire_certificates_handler

__all__ = ["expire_certificates_handler"]
