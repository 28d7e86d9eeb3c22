"""API routers, mounted under /api."""

from inscert.api.routers.admin import router as admin_router
from inscert.api.routers.certificates import router as certificates_router

__all__ = ["admin_router", "certificates_router"]
