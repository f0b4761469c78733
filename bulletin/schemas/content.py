"""
Schemas for content create/update payloads and API envelopes.

Payload models forbid unknown fields, so lifecycle columns (deleted_at,
created_at, updated_at, created_by, id) can never be written through
create/update. They change only through the archival operations. is_active
is accepted on create only; afterwards it changes through the toggle.

Aware datetimes are converted to naive school-local time on input.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bulletin.clock import to_school_local
from bulletin.models import ContentKind

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    @field_validator("*")
    @classmethod
    def _school_local(cls, value: Any) -> Any:
        # Stored timestamps are naive school-local time
        if isinstance(value, datetime) and value.tzinfo is not None:
            return to_school_local(value)
        return value


# -----------------------------------------------------------------------------
# Create
# -----------------------------------------------------------------------------


class CategoryCreate(_Payload):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    color: str | None = Field(None, pattern=HEX_COLOR)
    is_active: bool | None = None


class AnnouncementCreate(_Payload):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    category_id: int | None = Field(None, ge=1)
    is_alert: bool = False
    visibility_start_at: datetime | None = None
    visibility_end_at: datetime | None = None
    is_active: bool | None = None


class CalendarEventCreate(_Payload):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    event_date: date
    end_date: date | None = None
    category_id: int | None = Field(None, ge=1)
    is_holiday: bool = False
    holiday_type: str | None = Field(None, max_length=32)
    is_active: bool | None = None


class WelcomeCardCreate(_Payload):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    image_path: str | None = Field(None, max_length=512)
    order_index: int | None = Field(None, ge=0, description="Default: next free slot")
    is_active: bool | None = None


class CarouselImageCreate(_Payload):
    image_path: str = Field(..., min_length=1, max_length=512)
    order_index: int | None = Field(None, ge=0, description="Default: next free slot")
    is_active: bool | None = None


# -----------------------------------------------------------------------------
# Update (every field optional, only provided fields are applied)
# -----------------------------------------------------------------------------


class CategoryUpdate(_Payload):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    color: str | None = Field(None, pattern=HEX_COLOR)


class AnnouncementUpdate(_Payload):
    title: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = Field(None, min_length=1)
    category_id: int | None = Field(None, ge=1)
    is_alert: bool | None = None
    visibility_start_at: datetime | None = None
    visibility_end_at: datetime | None = None


class CalendarEventUpdate(_Payload):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    event_date: date | None = None
    end_date: date | None = None
    category_id: int | None = Field(None, ge=1)
    is_holiday: bool | None = None
    holiday_type: str | None = Field(None, max_length=32)


class WelcomeCardUpdate(_Payload):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    image_path: str | None = Field(None, max_length=512)
    order_index: int | None = Field(None, ge=0)


class CarouselImageUpdate(_Payload):
    image_path: str | None = Field(None, min_length=1, max_length=512)
    order_index: int | None = Field(None, ge=0)


CREATE_SCHEMAS: dict[ContentKind, type[_Payload]] = {
    ContentKind.CATEGORIES: CategoryCreate,
    ContentKind.ANNOUNCEMENTS: AnnouncementCreate,
    ContentKind.SCHOOL_CALENDAR: CalendarEventCreate,
    ContentKind.WELCOME_CARDS: WelcomeCardCreate,
    ContentKind.LOGIN_CAROUSEL_IMAGES: CarouselImageCreate,
}

UPDATE_SCHEMAS: dict[ContentKind, type[_Payload]] = {
    ContentKind.CATEGORIES: CategoryUpdate,
    ContentKind.ANNOUNCEMENTS: AnnouncementUpdate,
    ContentKind.SCHOOL_CALENDAR: CalendarEventUpdate,
    ContentKind.WELCOME_CARDS: WelcomeCardUpdate,
    ContentKind.LOGIN_CAROUSEL_IMAGES: CarouselImageUpdate,
}


# -----------------------------------------------------------------------------
# Requests / responses
# -----------------------------------------------------------------------------


class OrderAssignment(BaseModel):
    """One entry of a reorder request."""

    id: int = Field(..., ge=1)
    order_index: int = Field(..., ge=0)


class ReorderRequest(BaseModel):
    orders: list[OrderAssignment] = Field(..., min_length=1)


class BulkArchiveRequest(BaseModel):
    """Request to archive every inactive entity of a kind."""

    filters: dict[str, Any] = Field(default_factory=dict, description="Column equality filters")
    dry_run: bool = Field(False, description="Preview only, don't archive")


class Envelope(BaseModel):
    """Standard response body: {success, data, message}."""

    success: bool = True
    data: Any = None
    message: str = ""


class PageMeta(BaseModel):
    total: int
    limit: int
    offset: int
