# bulletin/routers/__init__.py
"""
API routers for v1 endpoints.
"""

from bulletin.routers.content import router as content_router
from bulletin.routers.admin_archive import router as admin_archive_router
from bulletin.routers.audit import router as audit_router
from bulletin.routers.time import router as time_router

__all__ = [
    "content_router",
    "admin_archive_router",
    "audit_router",
    "time_router",
]
