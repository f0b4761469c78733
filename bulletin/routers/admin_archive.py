# bulletin/routers/admin_archive.py
"""
Admin endpoints for archive maintenance.

GET  /v1/admin/archive/stats           - Lifecycle counts per content kind
POST /v1/admin/archive/expired         - Archive content whose display period is over
POST /v1/admin/archive/repair-holidays - Re-activate holidays left inactive
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from bulletin.auth import get_actor, require_admin_key
from bulletin.clock import Clock, get_clock
from bulletin.database import get_db
from bulletin.services.archival import archive_expired, get_archive_stats, repair_holidays
from bulletin.services.audit import Actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin/archive", tags=["admin-archive"])


# -----------------------------------------------------------------------------
# Response Models
# -----------------------------------------------------------------------------


class SweepResponse(BaseModel):
    """Outcome of one sweep over one table."""

    dry_run: bool
    target_table: str
    entities_processed: int
    entities_archived: int
    entities_skipped: int
    archived_ids: list[int]


class ExpiredSweepResponse(BaseModel):
    success: bool = True
    dry_run: bool
    results: list[SweepResponse]


class HolidayRepairResponse(BaseModel):
    success: bool = True
    dry_run: bool
    holidays_found: int
    holidays_reactivated: int
    reactivated_ids: list[int]


class StatsResponse(BaseModel):
    """Per-kind counts: total, visible, inactive, archived (+ kind extras)."""

    success: bool = True
    data: dict[str, dict[str, int]]


class MaintenanceRequest(BaseModel):
    dry_run: bool = Field(False, description="Preview only, don't change anything")
    confirm: bool = Field(False, description="Required confirmation for non-dry-run")


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


def _require_confirmation(request: MaintenanceRequest) -> None:
    if not request.dry_run and not request.confirm:
        raise HTTPException(
            status_code=400,
            detail="Set confirm=true to run without dry_run",
        )


@router.get("/stats", response_model=StatsResponse)
def get_stats(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _: None = Depends(require_admin_key),
) -> StatsResponse:
    """
    Lifecycle counts for every content kind.

    Calendar counts include protected_holidays; announcement counts include
    scheduled (active, not yet in their window).
    """
    return StatsResponse(data=get_archive_stats(db, clock))


@router.post("/expired", response_model=ExpiredSweepResponse)
def trigger_expired_sweep(
    request: MaintenanceRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
    _: None = Depends(require_admin_key),
) -> ExpiredSweepResponse:
    """
    Archive announcements past visibility_end_at and calendar events that
    have ended. Holidays are never swept.
    """
    _require_confirmation(request)

    results = archive_expired(db, actor, clock, dry_run=request.dry_run)
    logger.info(
        f"Expired sweep ({'dry run' if request.dry_run else 'live'}): "
        + ", ".join(f"{r.target_table}={r.entities_archived}" for r in results)
    )

    return ExpiredSweepResponse(
        dry_run=request.dry_run,
        results=[
            SweepResponse(
                dry_run=r.dry_run,
                target_table=r.target_table,
                entities_processed=r.entities_processed,
                entities_archived=r.entities_archived,
                entities_skipped=r.entities_skipped,
                archived_ids=r.archived_ids,
            )
            for r in results
        ],
    )


@router.post("/repair-holidays", response_model=HolidayRepairResponse)
def trigger_holiday_repair(
    request: MaintenanceRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
    _: None = Depends(require_admin_key),
) -> HolidayRepairResponse:
    """Re-activate live holidays that an older sweep deactivated."""
    _require_confirmation(request)

    result = repair_holidays(db, actor, clock, dry_run=request.dry_run)

    return HolidayRepairResponse(
        dry_run=result.dry_run,
        holidays_found=result.holidays_found,
        holidays_reactivated=result.holidays_reactivated,
        reactivated_ids=result.reactivated_ids,
    )
