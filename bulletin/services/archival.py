# bulletin/services/archival.py
"""
Archival manager for bulletin content.

State per entity:

    Active --archive()--> Archived --restore()--> Active

with the is_active toggle as an independent sub-state (an entity can be
inactive without being archived, and archived while active).

Handles:
- Single-entity archive / restore / toggle, each emitting exactly one audit
  record whose framing comes from the UPDATE's own rowcount
- Sweeps (inactive sweep, expired-content sweep) inside one locked
  transaction, all-or-nothing
- Holiday protection: every sweep starts from sweepable_query(), which
  drops holidays before any caller filter is applied
- Archive statistics and the holiday re-activation repair
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import func, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query, Session

from bulletin.clock import Clock
from bulletin.config import get_settings
from bulletin.constants import ArchiveDefaults
from bulletin.errors import (
    AlreadyArchivedError,
    ConcurrencyConflictError,
    LifecycleError,
    NotArchivedError,
    NotFoundError,
)
from bulletin.logging_config import log_operation
from bulletin.models import (
    CONTENT_MODELS,
    Announcement,
    AuditAction,
    CalendarEvent,
    ContentKind,
)
from bulletin.services import audit
from bulletin.services.audit import Actor
from bulletin.services.entity_store import (
    apply_filters,
    entity_to_dict,
    next_free_order_index,
    order_index_taken,
    resolve_kind,
)
from bulletin.services.visibility import visible_clause

logger = logging.getLogger(__name__)

# Sweeps may not filter on these; the base query owns them
SWEEP_RESERVED_FILTERS = frozenset({"deleted_at", "is_active", "is_holiday"})


@dataclass
class SweepResult:
    """Result of a multi-row archival sweep."""
    target_table: str
    entities_processed: int = 0
    entities_archived: int = 0
    entities_skipped: int = 0
    archived_ids: List[int] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class HolidayRepairResult:
    """Result of re-activating holidays left inactive."""
    holidays_found: int = 0
    holidays_reactivated: int = 0
    reactivated_ids: List[int] = field(default_factory=list)
    dry_run: bool = False


# -----------------------------------------------------------------------------
# Shared query pieces
# -----------------------------------------------------------------------------


def sweepable_query(db: Session, model: type) -> Query:
    """
    Base query for every sweep: live rows, holidays excluded.

    All sweeps must start here. There is no parameter to
    include holidays.
    """
    query = db.query(model).filter(model.deleted_at.is_(None))
    if hasattr(model, "is_holiday"):
        query = query.filter(model.is_holiday.is_(False))
    return query


def _archive_swept_row(db: Session, model: type, entity_id: int, now: datetime) -> int:
    """Conditional archive for sweeps. Re-checks the holiday guard at write time."""
    query = db.query(model).filter(model.id == entity_id, model.deleted_at.is_(None))
    if hasattr(model, "is_holiday"):
        query = query.filter(model.is_holiday.is_(False))
    return query.update({"deleted_at": now, "updated_at": now}, synchronize_session="fetch")


def _lock_entity(db: Session, model: type, entity_id: int) -> Optional[Any]:
    return db.query(model).filter(model.id == entity_id).with_for_update().first()


def _set_lock_timeout(db: Session, lock_timeout_ms: Optional[int]) -> None:
    """Bound row-lock waits for this transaction (PostgreSQL only)."""
    if db.get_bind().dialect.name != "postgresql":
        return
    if lock_timeout_ms is None:
        lock_timeout_ms = get_settings().BULK_LOCK_TIMEOUT_MS
    db.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout_ms)}ms'"))


def _is_lock_timeout(exc: OperationalError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode == ArchiveDefaults.POSTGRES_LOCK_NOT_AVAILABLE:
        return True
    message = str(exc.orig).lower()
    return "lock timeout" in message or "database is locked" in message


def _record_failure(
    db: Session,
    action: AuditAction,
    target_table: str,
    entity_id: int,
    actor: Actor,
    now: datetime,
    reason: str,
    old_values: Optional[dict] = None,
) -> None:
    """
    Persist a failure-framed audit record for a rejected transition.

    Nothing was mutated, so committing here only releases the row lock and
    keeps the record.
    """
    audit.record(
        db,
        action,
        target_table,
        entity_id,
        audit.describe(action, target_table, entity_id, actor, succeeded=False, reason=reason),
        actor,
        old_values=old_values,
        performed_at=now,
    )
    db.commit()


# -----------------------------------------------------------------------------
# Single-entity transitions
# -----------------------------------------------------------------------------


def archive(
    db: Session,
    kind: ContentKind | str,
    entity_id: int,
    actor: Actor,
    clock: Clock,
) -> Any:
    """
    Soft-delete one entity (deleted_at = now).

    Works on holidays too: this is the explicit, individual path.

    Raises:
        NotFoundError: no such entity
        AlreadyArchivedError: deleted_at already set (a failure record is
            written; the earlier success record is never repeated)
    """
    kind = resolve_kind(kind)
    model = CONTENT_MODELS[kind]
    now = clock.now()

    with log_operation("archive", target_table=kind.value, target_id=entity_id):
        try:
            entity = _lock_entity(db, model, entity_id)
            if entity is None:
                _record_failure(db, AuditAction.DELETE, kind.value, entity_id, actor, now, "not found")
                raise NotFoundError(f"{kind.value} record {entity_id} not found")

            before = entity_to_dict(entity)
            affected = (
                db.query(model)
                .filter(model.id == entity_id, model.deleted_at.is_(None))
                .update({"deleted_at": now, "updated_at": now}, synchronize_session="fetch")
            )
            if affected != 1:
                _record_failure(
                    db, AuditAction.DELETE, kind.value, entity_id, actor, now, "already archived",
                    old_values={"deleted_at": before["deleted_at"]},
                )
                raise AlreadyArchivedError(f"{kind.value} record {entity_id} is already archived")

            audit.record(
                db,
                AuditAction.DELETE,
                kind.value,
                entity_id,
                audit.describe(AuditAction.DELETE, kind.value, entity_id, actor, succeeded=True),
                actor,
                old_values={"deleted_at": None},
                new_values={"deleted_at": now.isoformat()},
                performed_at=now,
            )
            db.commit()
        except LifecycleError:
            raise
        except Exception:
            db.rollback()
            raise

    db.refresh(entity)
    logger.info(f"Archived {kind.value} record {entity_id}")
    return entity


def restore(
    db: Session,
    kind: ContentKind | str,
    entity_id: int,
    actor: Actor,
    clock: Clock,
) -> Any:
    """
    Bring an archived entity back (deleted_at = NULL).

    For ordered collections the old display position may have been reused
    while the entry was archived; in that case it moves to the next free slot.

    Raises:
        NotFoundError: no such entity
        NotArchivedError: deleted_at is not set
    """
    kind = resolve_kind(kind)
    model = CONTENT_MODELS[kind]
    now = clock.now()

    with log_operation("restore", target_table=kind.value, target_id=entity_id):
        try:
            entity = _lock_entity(db, model, entity_id)
            if entity is None:
                _record_failure(db, AuditAction.RESTORE, kind.value, entity_id, actor, now, "not found")
                raise NotFoundError(f"{kind.value} record {entity_id} not found")

            before = entity_to_dict(entity)
            values: Dict[str, Any] = {"deleted_at": None, "updated_at": now}
            if model.orderable and entity.deleted_at is not None:
                if order_index_taken(db, model, entity.order_index, exclude_id=entity.id):
                    values["order_index"] = next_free_order_index(db, model)

            affected = (
                db.query(model)
                .filter(model.id == entity_id, model.deleted_at.isnot(None))
                .update(values, synchronize_session="fetch")
            )
            if affected != 1:
                _record_failure(db, AuditAction.RESTORE, kind.value, entity_id, actor, now, "not archived")
                raise NotArchivedError(f"{kind.value} record {entity_id} is not archived")

            old_values = {"deleted_at": before["deleted_at"]}
            new_values: Dict[str, Any] = {"deleted_at": None}
            if "order_index" in values:
                old_values["order_index"] = before["order_index"]
                new_values["order_index"] = values["order_index"]

            audit.record(
                db,
                AuditAction.RESTORE,
                kind.value,
                entity_id,
                audit.describe(AuditAction.RESTORE, kind.value, entity_id, actor, succeeded=True),
                actor,
                old_values=old_values,
                new_values=new_values,
                performed_at=now,
            )
            db.commit()
        except LifecycleError:
            raise
        except Exception:
            db.rollback()
            raise

    db.refresh(entity)
    logger.info(f"Restored {kind.value} record {entity_id}")
    return entity


def toggle_active(
    db: Session,
    kind: ContentKind | str,
    entity_id: int,
    actor: Actor,
    clock: Clock,
) -> Any:
    """
    Flip is_active. Independent of deleted_at.

    The flip is a compare-and-set on the value read under lock; if it
    doesn't land, the status changed underneath us and nothing is claimed.

    Raises:
        NotFoundError: no such entity
        ConcurrencyConflictError: the compare-and-set matched no row
    """
    kind = resolve_kind(kind)
    model = CONTENT_MODELS[kind]
    now = clock.now()

    with log_operation("toggle_active", target_table=kind.value, target_id=entity_id):
        try:
            entity = _lock_entity(db, model, entity_id)
            if entity is None:
                _record_failure(db, AuditAction.TOGGLE_STATUS, kind.value, entity_id, actor, now, "not found")
                raise NotFoundError(f"{kind.value} record {entity_id} not found")

            was_active = bool(entity.is_active)
            affected = (
                db.query(model)
                .filter(model.id == entity_id, model.is_active.is_(was_active))
                .update({"is_active": not was_active, "updated_at": now}, synchronize_session="fetch")
            )
            if affected != 1:
                _record_failure(
                    db, AuditAction.TOGGLE_STATUS, kind.value, entity_id, actor, now,
                    "status changed concurrently",
                )
                raise ConcurrencyConflictError(f"{kind.value} record {entity_id} changed status concurrently")

            audit.record(
                db,
                AuditAction.TOGGLE_STATUS,
                kind.value,
                entity_id,
                audit.describe(
                    AuditAction.TOGGLE_STATUS, kind.value, entity_id, actor, succeeded=True,
                    reason="activated" if not was_active else "deactivated",
                ),
                actor,
                old_values={"is_active": was_active},
                new_values={"is_active": not was_active},
                performed_at=now,
            )
            db.commit()
        except LifecycleError:
            raise
        except Exception:
            db.rollback()
            raise

    db.refresh(entity)
    return entity


# -----------------------------------------------------------------------------
# Sweeps
# -----------------------------------------------------------------------------


def _sweep(
    db: Session,
    kind: ContentKind,
    narrow: Callable[[Query, type], Query],
    actor: Actor,
    clock: Clock,
    reason: str,
    operation: str,
    dry_run: bool = False,
    lock_timeout_ms: Optional[int] = None,
) -> SweepResult:
    """
    Archive every row of `kind` picked by `narrow(sweepable_query(...))`.

    One transaction: candidates are locked FOR UPDATE in id order, batch by
    batch, until none are left. Each is archived with a conditional UPDATE
    and gets one DELETE audit record. Any error rolls back every row and
    every audit record of the sweep.
    """
    model = CONTENT_MODELS[kind]
    result = SweepResult(target_table=kind.value, dry_run=dry_run)
    now = clock.now()
    batch_size = ArchiveDefaults.SWEEP_BATCH_SIZE

    with log_operation(operation, target_table=kind.value, dry_run=dry_run) as metrics:
        try:
            _set_lock_timeout(db, lock_timeout_ms)
            last_id = 0
            while True:
                candidates = (
                    narrow(sweepable_query(db, model), model)
                    .filter(model.id > last_id)
                    .order_by(model.id.asc())
                    .with_for_update()
                    .limit(batch_size)
                    .all()
                )
                if not candidates:
                    break
                last_id = candidates[-1].id
                result.entities_processed += len(candidates)

                for entity in candidates:
                    if dry_run:
                        result.entities_archived += 1
                        result.archived_ids.append(entity.id)
                        continue
                    if _archive_swept_row(db, model, entity.id, now) != 1:
                        result.entities_skipped += 1
                        continue
                    audit.record(
                        db,
                        AuditAction.DELETE,
                        kind.value,
                        entity.id,
                        audit.describe(AuditAction.DELETE, kind.value, entity.id, actor, succeeded=True, reason=reason),
                        actor,
                        old_values={"deleted_at": None},
                        new_values={"deleted_at": now.isoformat()},
                        performed_at=now,
                    )
                    result.entities_archived += 1
                    result.archived_ids.append(entity.id)

                if len(candidates) < batch_size:
                    break

            if dry_run:
                db.rollback()
            else:
                db.commit()
        except OperationalError as e:
            db.rollback()
            if _is_lock_timeout(e):
                raise ConcurrencyConflictError(
                    f"Timed out waiting for row locks on {kind.value}; retry the sweep"
                ) from e
            raise
        except Exception:
            db.rollback()
            raise

        metrics["items_processed"] = result.entities_processed
        metrics["items_archived"] = result.entities_archived
        metrics["items_skipped"] = result.entities_skipped

    return result


def bulk_archive_inactive(
    db: Session,
    kind: ContentKind | str,
    actor: Actor,
    clock: Clock,
    filters: Optional[Mapping[str, Any]] = None,
    dry_run: bool = False,
    lock_timeout_ms: Optional[int] = None,
) -> SweepResult:
    """
    Archive every inactive, live entity of `kind`. Holidays are never touched.

    Args:
        filters: extra column-equality filters; may not name is_active,
            is_holiday or deleted_at
        dry_run: report what would be archived without changing anything

    Raises:
        ValidationError: bad filter
        ConcurrencyConflictError: row locks not acquired in time
    """
    kind = resolve_kind(kind)
    model = CONTENT_MODELS[kind]
    # Validate filters before taking any locks
    apply_filters(db.query(model), model, filters, reserved=SWEEP_RESERVED_FILTERS)

    def narrow(query: Query, model: type) -> Query:
        query = query.filter(model.is_active.is_(False))
        return apply_filters(query, model, filters, reserved=SWEEP_RESERVED_FILTERS)

    return _sweep(
        db, kind, narrow, actor, clock,
        reason="inactive sweep",
        operation="bulk_archive_inactive",
        dry_run=dry_run,
        lock_timeout_ms=lock_timeout_ms,
    )


def archive_expired(
    db: Session,
    actor: Actor,
    clock: Clock,
    dry_run: bool = False,
    lock_timeout_ms: Optional[int] = None,
) -> List[SweepResult]:
    """
    Archive content whose display period is over.

    - announcements: visibility_end_at strictly before now (the end bound is
      inclusive, so an announcement is still shown at exactly its end time)
    - calendar events: end_date set and strictly before today (single-day
      events without end_date are left for the admin to archive)

    Runs only when invoked (CLI / admin endpoint). Each kind is its own
    transaction. Holidays are excluded by the shared base query.
    """
    now = clock.now()
    today = now.date()

    def expired_announcements(query: Query, model: type) -> Query:
        return query.filter(
            model.visibility_end_at.isnot(None),
            model.visibility_end_at < now,
        )

    def expired_events(query: Query, model: type) -> Query:
        return query.filter(model.end_date.isnot(None), model.end_date < today)

    return [
        _sweep(
            db, ContentKind.ANNOUNCEMENTS, expired_announcements, actor, clock,
            reason="display period ended", operation="archive_expired",
            dry_run=dry_run, lock_timeout_ms=lock_timeout_ms,
        ),
        _sweep(
            db, ContentKind.SCHOOL_CALENDAR, expired_events, actor, clock,
            reason="event ended", operation="archive_expired",
            dry_run=dry_run, lock_timeout_ms=lock_timeout_ms,
        ),
    ]


# -----------------------------------------------------------------------------
# Maintenance
# -----------------------------------------------------------------------------


def repair_holidays(
    db: Session,
    actor: Actor,
    clock: Clock,
    dry_run: bool = False,
) -> HolidayRepairResult:
    """
    Re-activate live holidays that were left inactive.

    Repairs damage from sweeps that predate holiday protection. Holidays
    that were individually archived (deleted_at set) are left alone.
    One TOGGLE_STATUS audit record per re-activated holiday.
    """
    result = HolidayRepairResult(dry_run=dry_run)
    now = clock.now()
    table = ContentKind.SCHOOL_CALENDAR.value

    with log_operation("repair_holidays", target_table=table, dry_run=dry_run) as metrics:
        try:
            holidays = (
                db.query(CalendarEvent)
                .filter(
                    CalendarEvent.is_holiday.is_(True),
                    CalendarEvent.is_active.is_(False),
                    CalendarEvent.deleted_at.is_(None),
                )
                .order_by(CalendarEvent.id.asc())
                .with_for_update()
                .all()
            )
            result.holidays_found = len(holidays)

            if dry_run:
                result.reactivated_ids = [h.id for h in holidays]
                db.rollback()
                return result

            for holiday in holidays:
                affected = (
                    db.query(CalendarEvent)
                    .filter(CalendarEvent.id == holiday.id, CalendarEvent.is_active.is_(False))
                    .update({"is_active": True, "updated_at": now}, synchronize_session="fetch")
                )
                if affected != 1:
                    continue
                audit.record(
                    db,
                    AuditAction.TOGGLE_STATUS,
                    table,
                    holiday.id,
                    audit.describe(
                        AuditAction.TOGGLE_STATUS, table, holiday.id, actor, succeeded=True,
                        reason="holiday protection repair",
                    ),
                    actor,
                    old_values={"is_active": False},
                    new_values={"is_active": True},
                    performed_at=now,
                )
                result.holidays_reactivated += 1
                result.reactivated_ids.append(holiday.id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        metrics["items_processed"] = result.holidays_found
        metrics["items_archived"] = 0

    return result


def get_archive_stats(db: Session, clock: Clock) -> Dict[str, Dict[str, int]]:
    """
    Per-kind lifecycle counts for the admin dashboard.

    visible + (live but not visible) + archived == total. Calendar stats
    also report how many live holidays the sweeps are protecting.
    """
    now = clock.now()
    stats: Dict[str, Dict[str, int]] = {}

    for kind, model in CONTENT_MODELS.items():
        total = db.query(func.count(model.id)).scalar() or 0
        archived = (
            db.query(func.count(model.id)).filter(model.deleted_at.isnot(None)).scalar()
        ) or 0
        inactive = (
            db.query(func.count(model.id))
            .filter(model.deleted_at.is_(None), model.is_active.is_(False))
            .scalar()
        ) or 0
        visible = (
            db.query(func.count(model.id)).filter(visible_clause(model, now)).scalar()
        ) or 0

        entry = {
            "total": total,
            "visible": visible,
            "inactive": inactive,
            "archived": archived,
        }
        if model is CalendarEvent:
            entry["protected_holidays"] = (
                db.query(func.count(model.id))
                .filter(model.deleted_at.is_(None), model.is_holiday.is_(True))
                .scalar()
            ) or 0
        if model is Announcement:
            entry["scheduled"] = (
                db.query(func.count(model.id))
                .filter(
                    model.deleted_at.is_(None),
                    model.is_active.is_(True),
                    model.visibility_start_at > now,
                )
                .scalar()
            ) or 0
        stats[kind.value] = entry

    return stats
