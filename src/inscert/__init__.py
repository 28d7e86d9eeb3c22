"""inscert - Insurance certificate lifecycle service.

Issues and manages insurance certificates for members of a professional
association: snapshot immutability, status lifecycle, and membership-year
driven expiration per organization and membership group.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
