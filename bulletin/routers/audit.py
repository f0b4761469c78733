# bulletin/routers/audit.py
"""
Admin endpoints for the audit trail.

GET /v1/admin/audit-logs                          - Filtered list, newest first
GET /v1/admin/audit-logs/{target_table}/{target_id} - One entity's history, oldest first
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bulletin.auth import require_admin_key
from bulletin.config import get_settings
from bulletin.constants import AuditDefaults
from bulletin.database import get_db
from bulletin.models import AuditAction
from bulletin.schemas.content import Envelope, PageMeta
from bulletin.services.audit import audit_to_dict, history, list_records

router = APIRouter(prefix="/v1/admin/audit-logs", tags=["admin-audit"])


@router.get("", response_model=Envelope)
def list_audit_logs(
    target_table: str | None = Query(None),
    target_id: int | None = Query(None, ge=1),
    action_type: AuditAction | None = Query(None),
    user_type: str | None = Query(None),
    user_id: int | None = Query(None),
    since: datetime | None = Query(None, description="performed_at lower bound (inclusive)"),
    until: datetime | None = Query(None, description="performed_at upper bound (inclusive)"),
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> Envelope:
    settings = get_settings()
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)

    records, total = list_records(
        db,
        target_table=target_table,
        target_id=target_id,
        action_type=action_type,
        user_type=user_type,
        user_id=user_id,
        since=since,
        until=until,
        limit=limit,
        offset=offset,
    )
    return Envelope(
        data={
            "items": [audit_to_dict(r) for r in records],
            "pagination": PageMeta(total=total, limit=limit, offset=offset).model_dump(),
        },
        message="Audit logs retrieved successfully",
    )


@router.get("/{target_table}/{target_id}", response_model=Envelope)
def get_entity_history(
    target_table: str,
    target_id: int,
    limit: int = Query(AuditDefaults.HISTORY_LIMIT, ge=1, le=AuditDefaults.HISTORY_LIMIT),
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> Envelope:
    """Every lifecycle transition recorded for one entity, including failed attempts."""
    records = history(db, target_table, target_id, limit=limit)
    return Envelope(
        data=[audit_to_dict(r) for r in records],
        message=f"{len(records)} audit records for {target_table} record {target_id}",
    )
