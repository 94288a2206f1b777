"""API routers for the SchoolDesk permissions service."""

from app.routers import access, role_permissions, whoami  # noqa: F401
