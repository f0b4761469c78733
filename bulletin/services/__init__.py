# bulletin/services/__init__.py
"""
Content lifecycle services.

- audit: append-only trail of lifecycle transitions
- visibility: pure visibility rule and its SQL rendition
- entity_store: create/update/lookup/listing of content rows
- archival: archive/restore/toggle, sweeps, maintenance
"""

from bulletin.services.audit import Actor, describe, record, record_session_event
from bulletin.services.visibility import is_visible, visible_clause
from bulletin.services.entity_store import (
    EntityPage,
    create_entity,
    find_active,
    find_all,
    find_archived,
    get_entity,
    reorder_entities,
    update_entity,
)
from bulletin.services.archival import (
    HolidayRepairResult,
    SweepResult,
    archive,
    archive_expired,
    bulk_archive_inactive,
    get_archive_stats,
    repair_holidays,
    restore,
    toggle_active,
)

__all__ = [
    # Audit
    "Actor",
    "describe",
    "record",
    "record_session_event",
    # Visibility
    "is_visible",
    "visible_clause",
    # Entity store
    "EntityPage",
    "create_entity",
    "update_entity",
    "get_entity",
    "find_active",
    "find_all",
    "find_archived",
    "reorder_entities",
    # Archival
    "archive",
    "restore",
    "toggle_active",
    "bulk_archive_inactive",
    "archive_expired",
    "repair_holidays",
    "get_archive_stats",
    "SweepResult",
    "HolidayRepairResult",
]
