"""HTTP surface: admin and public routers plus envelope error handling."""

from rate_approval.api.admin import router as admin_router
from rate_approval.api.errors import register_exception_handlers
from rate_approval.api.public import router as public_router

__all__ = ["admin_router", "public_router", "register_exception_handlers"]
