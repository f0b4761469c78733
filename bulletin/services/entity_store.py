# bulletin/services/entity_store.py
"""
Entity store for bulletin content.

Handles:
- Creating and updating content rows (payload validation, per-kind defaults)
- Single-entity lookup scoped to live / archived / any rows
- Visible, admin and archive listings
- Display-position bookkeeping for ordered collections

Lifecycle columns (deleted_at, is_active toggling) are changed by the
archival service, not here. Every mutation appends one audit record in the
same transaction before committing.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from bulletin.clock import Clock
from bulletin.errors import NotFoundError, ValidationError
from bulletin.logging_config import log_operation
from bulletin.models import (
    CONTENT_MODELS,
    Announcement,
    AuditAction,
    CalendarEvent,
    ContentKind,
    EntityScope,
)
from bulletin.schemas.content import CREATE_SCHEMAS, UPDATE_SCHEMAS
from bulletin.services import audit
from bulletin.services.audit import Actor
from bulletin.services.resilience import read_retry
from bulletin.services.visibility import visible_clause

logger = logging.getLogger(__name__)


@dataclass
class EntityPage:
    """One page of a listing."""
    items: List[Any] = field(default_factory=list)
    total: int = 0
    limit: Optional[int] = None
    offset: int = 0


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def resolve_kind(kind: ContentKind | str) -> ContentKind:
    try:
        return ContentKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown content kind '{kind}'")


def model_for(kind: ContentKind | str) -> type:
    return CONTENT_MODELS[resolve_kind(kind)]


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def entity_to_dict(entity: Any) -> Dict[str, Any]:
    """Column snapshot of an entity, JSON-safe (used for API output and audit values)."""
    return {
        column.key: _jsonable(getattr(entity, column.key))
        for column in entity.__table__.columns
    }


def _ordering(model: type) -> list:
    if model.orderable:
        return [model.order_index.asc(), model.id.asc()]
    if model is CalendarEvent:
        return [model.event_date.asc(), model.id.asc()]
    if model is Announcement:
        return [model.created_at.desc(), model.id.desc()]
    return [model.name.asc(), model.id.asc()]


# Columns filters may not touch; scope and visibility decide them
_RESERVED_FILTER_COLUMNS = {"deleted_at"}


def apply_filters(
    query: Query,
    model: type,
    filters: Optional[Mapping[str, Any]],
    reserved: frozenset | set = frozenset(_RESERVED_FILTER_COLUMNS),
) -> Query:
    """Apply column-equality filters. Unknown or reserved columns are rejected."""
    if not filters:
        return query

    columns = model.__table__.columns
    for key, value in filters.items():
        if key in reserved:
            raise ValidationError(f"Filtering on '{key}' is not allowed here")
        if key not in columns:
            raise ValidationError(f"Unknown filter field '{key}' for {model.__tablename__}")
        column = getattr(model, key)
        query = query.filter(column.is_(None) if value is None else column == value)
    return query


def _validate_payload(schemas: Mapping, kind: ContentKind, fields: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    schema = schemas[kind]
    try:
        parsed = schema.model_validate(dict(fields or {}))
    except PydanticValidationError as e:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError(f"Invalid {kind.value} payload", details=details)
    return parsed.model_dump(exclude_unset=partial)


def _check_consistency(entity: Any) -> None:
    """Cross-field rules that hold for both create and update."""
    for column in entity.__table__.columns:
        if column.nullable or column.primary_key or column.default is not None:
            continue
        if getattr(entity, column.key) is None:
            raise ValidationError(f"'{column.key}' is required")

    if isinstance(entity, Announcement):
        start, end = entity.visibility_start_at, entity.visibility_end_at
        if start is not None and end is not None and end < start:
            raise ValidationError("visibility_end_at must not be earlier than visibility_start_at")

    if isinstance(entity, CalendarEvent):
        if entity.end_date is not None and entity.end_date < entity.event_date:
            raise ValidationError("end_date must not be earlier than event_date")


def order_index_taken(db: Session, model: type, order_index: int, exclude_id: Optional[int] = None) -> bool:
    """True when a live sibling already holds `order_index`."""
    query = db.query(model.id).filter(
        model.deleted_at.is_(None),
        model.order_index == order_index,
    )
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return query.first() is not None


def next_free_order_index(db: Session, model: type) -> int:
    """One past the highest live position (archived rows don't reserve slots)."""
    highest = (
        db.query(func.max(model.order_index))
        .filter(model.deleted_at.is_(None))
        .scalar()
    )
    return 0 if highest is None else highest + 1


def _scoped(query: Query, model: type, scope: EntityScope) -> Query:
    if scope == EntityScope.LIVE:
        return query.filter(model.deleted_at.is_(None))
    if scope == EntityScope.ARCHIVED:
        return query.filter(model.deleted_at.isnot(None))
    return query


# -----------------------------------------------------------------------------
# Reads
# -----------------------------------------------------------------------------


@read_retry
def get_entity(
    db: Session,
    kind: ContentKind | str,
    entity_id: int,
    scope: EntityScope = EntityScope.LIVE,
) -> Any:
    """
    Fetch one entity.

    Raises:
        NotFoundError: no row with that id, or the row is outside `scope`
    """
    kind = resolve_kind(kind)
    model = CONTENT_MODELS[kind]
    entity = _scoped(db.query(model), model, EntityScope(scope)).filter(model.id == entity_id).first()
    if entity is None:
        raise NotFoundError(f"{kind.value} record {entity_id} not found")
    return entity


@read_retry
def find_active(
    db: Session,
    kind: ContentKind | str,
    as_of: datetime,
    filters: Optional[Mapping[str, Any]] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> EntityPage:
    """
    Entities visible at `as_of`: active, not archived, inside their window.

    `as_of` comes from the injected clock so every read path agrees on "now".
    """
    model = model_for(kind)
    query = db.query(model).filter(visible_clause(model, as_of))
    query = apply_filters(query, model, filters, reserved={"deleted_at", "is_active"})
    return _page(query, model, _ordering(model), limit, offset)


@read_retry
def find_all(
    db: Session,
    kind: ContentKind | str,
    filters: Optional[Mapping[str, Any]] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> EntityPage:
    """Every live (non-archived) entity, active or not. Admin listing."""
    model = model_for(kind)
    query = db.query(model).filter(model.deleted_at.is_(None))
    query = apply_filters(query, model, filters)
    return _page(query, model, _ordering(model), limit, offset)


@read_retry
def find_archived(
    db: Session,
    kind: ContentKind | str,
    filters: Optional[Mapping[str, Any]] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> EntityPage:
    """Archived (soft-deleted) entities, most recently archived first."""
    model = model_for(kind)
    query = db.query(model).filter(model.deleted_at.isnot(None))
    query = apply_filters(query, model, filters)
    return _page(query, model, [model.deleted_at.desc(), model.id.desc()], limit, offset)


def _page(query: Query, model: type, ordering: list, limit: Optional[int], offset: int) -> EntityPage:
    total = query.count()
    query = query.order_by(*ordering)
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return EntityPage(items=query.all(), total=total, limit=limit, offset=offset)


# -----------------------------------------------------------------------------
# Mutations
# -----------------------------------------------------------------------------


def create_entity(
    db: Session,
    kind: ContentKind | str,
    fields: Mapping[str, Any],
    actor: Actor,
    clock: Clock,
) -> Any:
    """
    Insert a new entity.

    deleted_at starts NULL; is_active defaults per kind (announcements start
    as drafts); ordered collections get the next free position when none
    is given.

    Raises:
        ValidationError: malformed payload, position already used, or a
            constraint violation on insert
    """
    kind = resolve_kind(kind)
    model = CONTENT_MODELS[kind]

    with log_operation("create", target_table=kind.value):
        data = _validate_payload(CREATE_SCHEMAS, kind, fields, partial=False)
        if data.get("is_active") is None:
            data["is_active"] = model.default_is_active

        if model.orderable:
            if data.get("order_index") is None:
                data["order_index"] = next_free_order_index(db, model)
            elif order_index_taken(db, model, data["order_index"]):
                raise ValidationError(f"order_index {data['order_index']} is already used by another {kind.value} entry")

        now = clock.now()
        entity = model(
            **data,
            created_by=actor.user_id,
            created_at=now,
            updated_at=now,
            deleted_at=None,
        )
        _check_consistency(entity)

        try:
            db.add(entity)
            db.flush()
            audit.record(
                db,
                AuditAction.CREATE,
                kind.value,
                entity.id,
                audit.describe(AuditAction.CREATE, kind.value, entity.id, actor, succeeded=True),
                actor,
                new_values=entity_to_dict(entity),
                performed_at=now,
            )
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Create on {kind.value} violated a constraint: {e.orig}")
            raise ValidationError(f"Could not create {kind.value} record: conflicts with existing data")
        except Exception:
            db.rollback()
            raise

        db.refresh(entity)
        logger.info(f"Created {kind.value} record {entity.id}")
        return entity


def update_entity(
    db: Session,
    kind: ContentKind | str,
    entity_id: int,
    fields: Mapping[str, Any],
    actor: Actor,
    clock: Clock,
) -> Any:
    """
    Apply a partial update to a live entity.

    Raises:
        NotFoundError: missing or archived (archived rows are read-only until restored)
        ValidationError: malformed payload or position clash
    """
    kind = resolve_kind(kind)
    model = CONTENT_MODELS[kind]

    with log_operation("update", target_table=kind.value, target_id=entity_id):
        data = _validate_payload(UPDATE_SCHEMAS, kind, fields, partial=True)
        if not data:
            raise ValidationError("No fields to update")

        try:
            entity = (
                db.query(model)
                .filter(model.id == entity_id, model.deleted_at.is_(None))
                .with_for_update()
                .first()
            )
            if entity is None:
                raise NotFoundError(f"{kind.value} record {entity_id} not found")

            if model.orderable and data.get("order_index") is not None:
                if data["order_index"] != entity.order_index and order_index_taken(
                    db, model, data["order_index"], exclude_id=entity.id
                ):
                    raise ValidationError(
                        f"order_index {data['order_index']} is already used by another {kind.value} entry"
                    )

            before = entity_to_dict(entity)
            for key, value in data.items():
                setattr(entity, key, value)
            _check_consistency(entity)

            now = clock.now()
            entity.updated_at = now
            db.flush()
            after = entity_to_dict(entity)

            changed = [key for key in data if before[key] != after[key]]
            audit.record(
                db,
                AuditAction.UPDATE,
                kind.value,
                entity.id,
                audit.describe(AuditAction.UPDATE, kind.value, entity.id, actor, succeeded=True),
                actor,
                old_values={key: before[key] for key in changed},
                new_values={key: after[key] for key in changed},
                performed_at=now,
            )
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Update on {kind.value} {entity_id} violated a constraint: {e.orig}")
            raise ValidationError(f"Could not update {kind.value} record: conflicts with existing data")
        except Exception:
            db.rollback()
            raise

        db.refresh(entity)
        return entity


def reorder_entities(
    db: Session,
    kind: ContentKind | str,
    orders: Sequence[Tuple[int, int]],
    actor: Actor,
    clock: Clock,
) -> List[Any]:
    """
    Reassign display positions for an ordered collection in one transaction.

    Args:
        orders: (entity_id, order_index) pairs

    Positions must stay unique among live rows, counting rows that are not
    part of the request. Emits one UPDATE audit record per moved entity.
    """
    kind = resolve_kind(kind)
    model = CONTENT_MODELS[kind]
    if not model.orderable:
        raise ValidationError(f"{kind.value} entries have no display order")

    ids = [entity_id for entity_id, _ in orders]
    targets = [order_index for _, order_index in orders]
    if len(set(ids)) != len(ids):
        raise ValidationError("Each entry may appear only once in a reorder request")
    if len(set(targets)) != len(targets):
        raise ValidationError("Each order_index may be assigned only once")
    if any(order_index < 0 for order_index in targets):
        raise ValidationError("order_index must be zero or greater")

    with log_operation("reorder", target_table=kind.value) as metrics:
        try:
            rows = (
                db.query(model)
                .filter(model.id.in_(ids), model.deleted_at.is_(None))
                .with_for_update()
                .all()
            )
            by_id = {row.id: row for row in rows}
            missing = [entity_id for entity_id in ids if entity_id not in by_id]
            if missing:
                raise NotFoundError(f"{kind.value} records not found: {missing}")

            clash = (
                db.query(model.order_index)
                .filter(
                    model.deleted_at.is_(None),
                    model.id.notin_(ids),
                    model.order_index.in_(targets),
                )
                .first()
            )
            if clash is not None:
                raise ValidationError(f"order_index {clash[0]} is held by an entry outside this request")

            now = clock.now()
            previous = {row.id: row.order_index for row in rows}

            # Park every row on a negative slot first so the live-position
            # unique index never sees two rows on the same value mid-update.
            for i, entity_id in enumerate(ids):
                by_id[entity_id].order_index = -(i + 1)
            db.flush()

            moved = 0
            for entity_id, order_index in orders:
                entity = by_id[entity_id]
                entity.order_index = order_index
                if previous[entity_id] != order_index:
                    entity.updated_at = now
                    moved += 1
            db.flush()

            for entity_id, order_index in orders:
                if previous[entity_id] == order_index:
                    continue
                audit.record(
                    db,
                    AuditAction.UPDATE,
                    kind.value,
                    entity_id,
                    audit.describe(AuditAction.UPDATE, kind.value, entity_id, actor, succeeded=True, reason="reordered"),
                    actor,
                    old_values={"order_index": previous[entity_id]},
                    new_values={"order_index": order_index},
                    performed_at=now,
                )
            db.commit()
            metrics["items_processed"] = moved
        except Exception:
            db.rollback()
            raise

    return [by_id[entity_id] for entity_id in ids]
