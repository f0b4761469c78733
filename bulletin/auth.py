# bulletin/auth.py
"""Shared authentication dependencies."""

import os
import secrets

from fastapi import Header, HTTPException, Request

from bulletin.constants import AuditDefaults
from bulletin.services.audit import Actor


def require_admin_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> None:
    """Validate admin API key. Fails closed if ADMIN_API_KEY is not set."""
    expected_key = os.getenv("ADMIN_API_KEY")

    if not expected_key:
        raise HTTPException(
            status_code=500,
            detail="Server misconfiguration: admin authentication not configured",
        )

    if not x_api_key or not secrets.compare_digest(x_api_key, expected_key):
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing API key",
        )


def get_actor(
    request: Request,
    x_admin_id: int | None = Header(default=None, alias="X-Admin-Id"),
    x_admin_email: str | None = Header(default=None, alias="X-Admin-Email"),
) -> Actor:
    """
    Identify the admin behind a request for the audit trail.

    Login itself is handled upstream; the gateway forwards the admin's id
    and email alongside the API key.
    """
    return Actor(
        user_type=AuditDefaults.ADMIN_USER_TYPE,
        user_id=x_admin_id,
        identifier=x_admin_email,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
