# bulletin/services/audit.py
"""
Audit recorder for content lifecycle transitions.

Handles:
- Building descriptions whose success/failure framing comes only from the
  outcome the caller observed
- Appending audit rows without ever rolling back the business change
- Login/logout records on behalf of the auth collaborator
- Read-only queries over the trail
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bulletin.clock import Clock
from bulletin.constants import AuditDefaults
from bulletin.models import AuditAction, AuditLog
from bulletin.services.resilience import read_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Who performed an operation, as reported by the caller."""
    user_type: str = AuditDefaults.SYSTEM_USER_TYPE
    user_id: Optional[int] = None
    identifier: Optional[str] = None  # email or student number
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls()

    @property
    def label(self) -> str:
        if self.identifier:
            return self.identifier
        if self.user_id is not None:
            return f"{self.user_type.capitalize()} ID {self.user_id}"
        return AuditDefaults.SYSTEM_IDENTIFIER


# (past tense on success, infinitive on failure)
_VERBS = {
    AuditAction.CREATE: ("created", "create"),
    AuditAction.UPDATE: ("updated", "update"),
    AuditAction.DELETE: ("archived", "archive"),
    AuditAction.RESTORE: ("restored", "restore"),
    AuditAction.TOGGLE_STATUS: ("toggled status of", "toggle status of"),
}


def describe(
    action: AuditAction,
    target_table: str,
    target_id: Optional[int],
    actor: Actor,
    succeeded: bool,
    reason: Optional[str] = None,
) -> str:
    """
    Build an audit description.

    The framing ("successful"/"failed", "archived"/"failed to archive") is
    derived from `succeeded` alone. Callers must pass the result of the
    mutation itself, not something inferred from response codes.
    """
    if action in (AuditAction.LOGIN, AuditAction.LOGOUT):
        outcome = "successful" if succeeded else "failed"
        text = f"{action.value} {outcome} for {actor.label}"
    else:
        past, infinitive = _VERBS[action]
        target = f"{target_table} record ID {target_id}" if target_id is not None else f"{target_table} record"
        if succeeded:
            text = f"{actor.label} {past} {target}"
        else:
            text = f"{actor.label} failed to {infinitive} {target}"

    if reason:
        text = f"{text}: {reason}"
    return text


def record(
    db: Session,
    action_type: AuditAction,
    target_table: str,
    target_id: Optional[int],
    description: str,
    actor: Actor,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    *,
    performed_at: datetime,
) -> Optional[AuditLog]:
    """
    Append one audit row inside a SAVEPOINT.

    Pending business changes are flushed first, outside the savepoint, so
    their errors still reach the caller. A failure writing the audit row
    itself is logged and reported by returning None; the enclosing
    transaction stays usable and the business change is kept.

    Does not commit. The caller owns the transaction.
    """
    db.flush()

    entry = AuditLog(
        user_type=actor.user_type,
        user_id=actor.user_id,
        action_type=action_type.value,
        target_table=target_table,
        target_id=target_id,
        description=description,
        old_values=old_values,
        new_values=new_values,
        ip_address=actor.ip_address,
        user_agent=actor.user_agent,
        performed_at=performed_at,
    )

    try:
        with db.begin_nested():
            db.add(entry)
    except SQLAlchemyError as e:
        logger.error(
            f"Failed to write audit record for {target_table} {target_id}: {e}",
            extra={
                "event": "audit_write_failed",
                "action_type": action_type.value,
                "target_table": target_table,
                "target_id": target_id,
            },
        )
        return None

    logger.info(
        "Audit record created",
        extra={
            "event": "audit_recorded",
            "action_type": action_type.value,
            "target_table": target_table,
            "target_id": target_id,
            "user_type": actor.user_type,
            "user_id": actor.user_id,
        },
    )
    return entry


def record_session_event(
    db: Session,
    action: AuditAction,
    actor: Actor,
    succeeded: bool,
    clock: Clock,
    reason: Optional[str] = None,
) -> Optional[AuditLog]:
    """
    Record a LOGIN or LOGOUT reported by the auth collaborator.

    `succeeded` must be the auth operation's own return value. The row is
    stamped from `clock`, like every lifecycle record. This is a standalone
    unit of work, so it commits; a commit failure is logged and swallowed
    like any other audit failure.
    """
    if action not in (AuditAction.LOGIN, AuditAction.LOGOUT):
        raise ValueError(f"{action.value} is not a session event")

    entry = record(
        db,
        action,
        "authentication",
        actor.user_id,
        describe(action, "authentication", actor.user_id, actor, succeeded, reason),
        actor,
        new_values=None if succeeded else {"reason": reason},
        performed_at=clock.now(),
    )
    if entry is None:
        return None

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to commit {action.value} audit record: {e}")
        return None
    return entry


@read_retry
def list_records(
    db: Session,
    target_table: Optional[str] = None,
    target_id: Optional[int] = None,
    action_type: Optional[AuditAction] = None,
    user_type: Optional[str] = None,
    user_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[AuditLog], int]:
    """
    Query the audit trail, newest first.

    Returns:
        (records, total matching count)
    """
    query = db.query(AuditLog)
    if target_table:
        query = query.filter(AuditLog.target_table == target_table)
    if target_id is not None:
        query = query.filter(AuditLog.target_id == target_id)
    if action_type:
        query = query.filter(AuditLog.action_type == AuditAction(action_type).value)
    if user_type:
        query = query.filter(AuditLog.user_type == user_type)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if since:
        query = query.filter(AuditLog.performed_at >= since)
    if until:
        query = query.filter(AuditLog.performed_at <= until)

    total = query.count()
    records = (
        query.order_by(AuditLog.performed_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return records, total


@read_retry
def history(
    db: Session,
    target_table: str,
    target_id: int,
    limit: int = AuditDefaults.HISTORY_LIMIT,
) -> List[AuditLog]:
    """Lifecycle history of one entity, oldest first."""
    return (
        db.query(AuditLog)
        .filter(AuditLog.target_table == target_table, AuditLog.target_id == target_id)
        .order_by(AuditLog.performed_at.asc(), AuditLog.id.asc())
        .limit(limit)
        .all()
    )


def audit_to_dict(entry: AuditLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "user_type": entry.user_type,
        "user_id": entry.user_id,
        "action_type": entry.action_type,
        "target_table": entry.target_table,
        "target_id": entry.target_id,
        "description": entry.description,
        "old_values": entry.old_values,
        "new_values": entry.new_values,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "performed_at": entry.performed_at,
    }
