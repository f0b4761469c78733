# bulletin/models.py
"""
Bulletin content database models

Tables:
- Category: grouping for announcements and calendar events
- Announcement: bulletin posts with an optional visibility window
- CalendarEvent: school calendar entries, including protected holidays
- WelcomeCard: welcome-page cards, ordered
- LoginCarouselImage: login-page carousel images, ordered
- AuditLog: append-only trail of lifecycle transitions

Every content table shares the lifecycle columns from LifecycleMixin:
is_active (administrative on/off) and deleted_at (soft delete / archive).
The two are independent; a row can be inactive without being archived.
"""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB

from bulletin.clock import school_now
from bulletin.database import Base

JSONVariant = JSON().with_variant(JSONB(), "postgresql")


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class ContentKind(str, Enum):
    """Content collections under lifecycle management (value = table name)."""
    CATEGORIES = "categories"
    ANNOUNCEMENTS = "announcements"
    SCHOOL_CALENDAR = "school_calendar"
    WELCOME_CARDS = "welcome_cards"
    LOGIN_CAROUSEL_IMAGES = "login_carousel_images"


class AuditAction(str, Enum):
    """Audit trail action types."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RESTORE = "RESTORE"
    TOGGLE_STATUS = "TOGGLE_STATUS"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"


class EntityScope(str, Enum):
    """Which rows a single-entity lookup may return."""
    LIVE = "live"          # deleted_at IS NULL
    ARCHIVED = "archived"  # deleted_at IS NOT NULL
    ANY = "any"


# -----------------------------------------------------------------------------
# Lifecycle columns
# -----------------------------------------------------------------------------

class LifecycleMixin:
    """Columns shared by every content table."""

    # Default for is_active when a create payload omits it
    default_is_active = True
    # True when rows carry a display position (order_index, invariant: unique among live rows)
    orderable = False

    id = Column(Integer, primary_key=True, autoincrement=True)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, nullable=True)  # admin id, ownership only
    created_at = Column(DateTime, default=school_now, nullable=False)
    updated_at = Column(DateTime, default=school_now, nullable=True)


# -----------------------------------------------------------------------------
# Category
# -----------------------------------------------------------------------------

class Category(LifecycleMixin, Base):
    """Announcement / calendar category."""
    __tablename__ = "categories"

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=True)  # "#RRGGBB"

    __table_args__ = (
        Index("ix_categories_deleted_at", "deleted_at"),
    )


# -----------------------------------------------------------------------------
# Announcement
# -----------------------------------------------------------------------------

class Announcement(LifecycleMixin, Base):
    """
    Bulletin announcement.

    Announcements start as drafts (is_active=False) and are shown only while
    the optional [visibility_start_at, visibility_end_at] window holds.
    Either bound may be NULL (unbounded on that side). Both are inclusive.
    """
    __tablename__ = "announcements"

    default_is_active = False

    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    is_alert = Column(Boolean, nullable=False, default=False)  # triggers SMS fan-out downstream

    visibility_start_at = Column(DateTime, nullable=True)
    visibility_end_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_announcements_deleted_at", "deleted_at"),
        Index("ix_announcements_visibility", "visibility_start_at", "visibility_end_at"),
    )


# -----------------------------------------------------------------------------
# CalendarEvent
# -----------------------------------------------------------------------------

class CalendarEvent(LifecycleMixin, Base):
    """
    School calendar entry.

    Holidays (is_holiday=True) are protected: no sweep may deactivate or
    archive them. Only explicit operations on a single id touch them.
    """
    __tablename__ = "school_calendar"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)

    is_holiday = Column(Boolean, nullable=False, default=False)
    holiday_type = Column(String(32), nullable=True)  # "regular", "special", "school"

    __table_args__ = (
        Index("ix_school_calendar_deleted_at", "deleted_at"),
        Index("ix_school_calendar_event_date", "event_date"),
        Index("ix_school_calendar_is_holiday", "is_holiday"),
    )


# -----------------------------------------------------------------------------
# Welcome page content
# -----------------------------------------------------------------------------

class WelcomeCard(LifecycleMixin, Base):
    """Welcome-page card, displayed by order_index."""
    __tablename__ = "welcome_cards"

    orderable = True

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    image_path = Column(String(512), nullable=True)
    order_index = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_welcome_cards_deleted_at", "deleted_at"),
        Index(
            "uq_welcome_cards_live_order_index",
            "order_index",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )


class LoginCarouselImage(LifecycleMixin, Base):
    """Login-page carousel image, displayed by order_index."""
    __tablename__ = "login_carousel_images"

    orderable = True

    image_path = Column(String(512), nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_login_carousel_images_deleted_at", "deleted_at"),
        Index(
            "uq_login_carousel_images_live_order_index",
            "order_index",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )


CONTENT_MODELS = {
    ContentKind.CATEGORIES: Category,
    ContentKind.ANNOUNCEMENTS: Announcement,
    ContentKind.SCHOOL_CALENDAR: CalendarEvent,
    ContentKind.WELCOME_CARDS: WelcomeCard,
    ContentKind.LOGIN_CAROUSEL_IMAGES: LoginCarouselImage,
}


# -----------------------------------------------------------------------------
# AuditLog
# -----------------------------------------------------------------------------

class AuditLog(Base):
    """
    Append-only audit trail.

    One row per lifecycle mutation (and per login/logout reported by the
    auth collaborator). Rows are never updated or deleted.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Who
    user_type = Column(String(16), nullable=False, default="system")  # admin, student, system
    user_id = Column(Integer, nullable=True)

    # What
    action_type = Column(String(16), nullable=False)  # AuditAction enum
    target_table = Column(String(64), nullable=False)
    target_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=False)
    old_values = Column(JSONVariant, nullable=True)
    new_values = Column(JSONVariant, nullable=True)

    # Request context
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(512), nullable=True)

    performed_at = Column(DateTime, default=school_now, nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_target", "target_table", "target_id", "performed_at"),
        Index("ix_audit_logs_action_type", "action_type"),
        Index("ix_audit_logs_performed_at", "performed_at"),
    )
