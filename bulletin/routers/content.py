# bulletin/routers/content.py
"""
Content endpoints, one set per content kind.

GET    /v1/content/{kind}                        - Visible entries (public)
GET    /v1/content/{kind}/all                    - Live entries, active or not (admin)
GET    /v1/content/{kind}/archived               - Archived entries (admin)
GET    /v1/content/{kind}/{id}                   - One visible entry (public)
GET    /v1/content/{kind}/{id}/admin             - One entry in a chosen scope (admin)
POST   /v1/content/{kind}                        - Create (admin)
PUT    /v1/content/{kind}/{id}                   - Partial update (admin)
PUT    /v1/content/{kind}/{id}/toggle            - Flip is_active (admin)
DELETE /v1/content/{kind}/{id}                   - Archive / soft delete (admin)
POST   /v1/content/{kind}/{id}/restore           - Restore from archive (admin)
POST   /v1/content/{kind}/bulk-archive-inactive  - Archive all inactive, holidays excluded (admin)
PUT    /v1/content/{kind}/reorder                - Reassign display order (admin)

Every response uses the {success, data, message} envelope.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from bulletin.auth import get_actor, require_admin_key
from bulletin.clock import Clock, get_clock
from bulletin.config import get_settings
from bulletin.database import get_db
from bulletin.errors import NotFoundError
from bulletin.models import ContentKind, EntityScope
from bulletin.schemas.content import BulkArchiveRequest, Envelope, PageMeta, ReorderRequest
from bulletin.services import archival, entity_store
from bulletin.services.audit import Actor
from bulletin.services.entity_store import EntityPage, entity_to_dict
from bulletin.services.visibility import is_visible

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/content", tags=["content"])


def _page_size(limit: int | None) -> int:
    settings = get_settings()
    if limit is None:
        return settings.DEFAULT_PAGE_SIZE
    return min(limit, settings.MAX_PAGE_SIZE)


def _page_data(page: EntityPage) -> dict[str, Any]:
    return {
        "items": [entity_to_dict(entity) for entity in page.items],
        "pagination": PageMeta(total=page.total, limit=page.limit, offset=page.offset).model_dump(),
    }


# -----------------------------------------------------------------------------
# Reads
# -----------------------------------------------------------------------------


@router.get("/{kind}", response_model=Envelope)
def list_visible(
    kind: ContentKind,
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> Envelope:
    """Entries end users should see right now, per the server clock."""
    page = entity_store.find_active(db, kind, clock.now(), limit=_page_size(limit), offset=offset)
    return Envelope(data=_page_data(page), message=f"{kind.value} retrieved successfully")


@router.get("/{kind}/all", response_model=Envelope)
def list_all(
    kind: ContentKind,
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> Envelope:
    page = entity_store.find_all(db, kind, limit=_page_size(limit), offset=offset)
    return Envelope(data=_page_data(page), message=f"{kind.value} retrieved successfully")


@router.get("/{kind}/archived", response_model=Envelope)
def list_archived(
    kind: ContentKind,
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> Envelope:
    page = entity_store.find_archived(db, kind, limit=_page_size(limit), offset=offset)
    return Envelope(data=_page_data(page), message=f"Archived {kind.value} retrieved successfully")


@router.get("/{kind}/{entity_id}", response_model=Envelope)
def get_visible(
    kind: ContentKind,
    entity_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> Envelope:
    """One entry, only while it is visible. Hidden entries look absent."""
    entity = entity_store.get_entity(db, kind, entity_id, EntityScope.LIVE)
    if not is_visible(entity, clock.now()):
        raise NotFoundError(f"{kind.value} record {entity_id} not found")
    return Envelope(data=entity_to_dict(entity), message=f"{kind.value} record retrieved successfully")


@router.get("/{kind}/{entity_id}/admin", response_model=Envelope)
def get_any(
    kind: ContentKind,
    entity_id: int,
    scope: EntityScope = Query(EntityScope.ANY),
    db: Session = Depends(get_db),
    _: None = Depends(require_admin_key),
) -> Envelope:
    entity = entity_store.get_entity(db, kind, entity_id, scope)
    return Envelope(data=entity_to_dict(entity), message=f"{kind.value} record retrieved successfully")


# -----------------------------------------------------------------------------
# Mutations
# -----------------------------------------------------------------------------


@router.post("/{kind}", response_model=Envelope, status_code=201)
def create(
    kind: ContentKind,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
    _: None = Depends(require_admin_key),
) -> Envelope:
    entity = entity_store.create_entity(db, kind, payload, actor, clock)
    return Envelope(data=entity_to_dict(entity), message=f"{kind.value} record created successfully")


@router.put("/{kind}/reorder", response_model=Envelope)
def reorder(
    kind: ContentKind,
    request: ReorderRequest,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
    _: None = Depends(require_admin_key),
) -> Envelope:
    entities = entity_store.reorder_entities(
        db, kind, [(o.id, o.order_index) for o in request.orders], actor, clock
    )
    return Envelope(
        data=[entity_to_dict(entity) for entity in entities],
        message=f"{kind.value} reordered successfully",
    )


@router.post("/{kind}/bulk-archive-inactive", response_model=Envelope)
def bulk_archive_inactive(
    kind: ContentKind,
    request: BulkArchiveRequest | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
    _: None = Depends(require_admin_key),
) -> Envelope:
    """
    Archive every inactive entry of this kind.

    Holidays are always excluded, whatever the filters say.
    """
    request = request or BulkArchiveRequest()
    result = archival.bulk_archive_inactive(
        db, kind, actor, clock, filters=request.filters, dry_run=request.dry_run
    )
    verb = "would be archived" if result.dry_run else "archived"
    return Envelope(
        data={
            "dry_run": result.dry_run,
            "processed": result.entities_processed,
            "archived": result.entities_archived,
            "skipped": result.entities_skipped,
            "archived_ids": result.archived_ids,
        },
        message=f"{result.entities_archived} {kind.value} records {verb}",
    )


@router.put("/{kind}/{entity_id}", response_model=Envelope)
def update(
    kind: ContentKind,
    entity_id: int,
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
    _: None = Depends(require_admin_key),
) -> Envelope:
    entity = entity_store.update_entity(db, kind, entity_id, payload, actor, clock)
    return Envelope(data=entity_to_dict(entity), message=f"{kind.value} record updated successfully")


@router.put("/{kind}/{entity_id}/toggle", response_model=Envelope)
def toggle(
    kind: ContentKind,
    entity_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
    _: None = Depends(require_admin_key),
) -> Envelope:
    entity = archival.toggle_active(db, kind, entity_id, actor, clock)
    state = "activated" if entity.is_active else "deactivated"
    return Envelope(data=entity_to_dict(entity), message=f"{kind.value} record {state} successfully")


@router.delete("/{kind}/{entity_id}", response_model=Envelope)
def archive(
    kind: ContentKind,
    entity_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
    _: None = Depends(require_admin_key),
) -> Envelope:
    entity = archival.archive(db, kind, entity_id, actor, clock)
    return Envelope(data=entity_to_dict(entity), message=f"{kind.value} record archived successfully")


@router.post("/{kind}/{entity_id}/restore", response_model=Envelope)
def restore(
    kind: ContentKind,
    entity_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    actor: Actor = Depends(get_actor),
    _: None = Depends(require_admin_key),
) -> Envelope:
    entity = archival.restore(db, kind, entity_id, actor, clock)
    return Envelope(data=entity_to_dict(entity), message=f"{kind.value} record restored successfully")
