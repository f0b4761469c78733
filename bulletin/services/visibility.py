# bulletin/services/visibility.py
"""
Visibility evaluation for bulletin content.

An entity is visible at instant t when:
    is_active
    AND deleted_at IS NULL
    AND (visibility_start_at IS NULL OR visibility_start_at <= t)
    AND (visibility_end_at IS NULL OR visibility_end_at >= t)

Both window bounds are inclusive. Kinds without a window (everything but
announcements) behave as if both bounds were NULL.

is_visible() is pure: the caller passes `as_of` from the injected Clock.
visible_clause() renders the same rule as a SQL filter so read paths can
push it into the query; the two must stay in lockstep.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement


def is_visible(entity: Any, as_of: datetime) -> bool:
    """Return True when `entity` should be shown to end users at `as_of`."""
    if not entity.is_active:
        return False
    if entity.deleted_at is not None:
        return False

    start = getattr(entity, "visibility_start_at", None)
    if start is not None and start > as_of:
        return False

    end = getattr(entity, "visibility_end_at", None)
    if end is not None and end < as_of:
        return False

    return True


def visible_clause(model: type, as_of: datetime) -> ColumnElement[bool]:
    """SQL rendition of is_visible() for `model` at `as_of`."""
    conditions = [
        model.is_active.is_(True),
        model.deleted_at.is_(None),
    ]
    if hasattr(model, "visibility_start_at"):
        conditions.append(
            or_(model.visibility_start_at.is_(None), model.visibility_start_at <= as_of)
        )
    if hasattr(model, "visibility_end_at"):
        conditions.append(
            or_(model.visibility_end_at.is_(None), model.visibility_end_at >= as_of)
        )
    return and_(*conditions)
