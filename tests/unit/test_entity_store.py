"""
Tests for the entity store: create, update, lookup, listings, reorder.
"""

from datetime import date, datetime, timedelta

import pytest

pytestmark = pytest.mark.sqlite


class TestCreateEntity:
    """Tests for create_entity()."""

    def test_announcement_starts_as_draft(self, db, admin, clock):
        from bulletin.services.entity_store import create_entity

        entity = create_entity(db, "announcements", {"title": "Exam week", "content": "Bring pencils"}, admin, clock)

        assert entity.id is not None
        assert entity.is_active is False
        assert entity.deleted_at is None
        assert entity.created_by == 7
        assert entity.created_at == clock.now()

    def test_other_kinds_start_active(self, db, admin, clock):
        from bulletin.services.entity_store import create_entity

        category = create_entity(db, "categories", {"name": "Sports"}, admin, clock)
        event = create_entity(
            db, "school_calendar", {"title": "Foundation Day", "event_date": "2025-06-10"}, admin, clock
        )

        assert category.is_active is True
        assert event.is_active is True
        assert event.event_date == date(2025, 6, 10)

    def test_explicit_is_active_wins(self, db, admin, clock):
        from bulletin.services.entity_store import create_entity

        entity = create_entity(
            db, "announcements", {"title": "Now", "content": "Live", "is_active": True}, admin, clock
        )
        assert entity.is_active is True

    def test_writes_one_create_record(self, db, admin, clock, audit_rows):
        from bulletin.services.entity_store import create_entity

        entity = create_entity(db, "categories", {"name": "Clubs"}, admin, clock)

        rows = audit_rows("categories", entity.id)
        assert len(rows) == 1
        assert rows[0].action_type == "CREATE"
        assert rows[0].description == f"registrar@school.edu created categories record ID {entity.id}"
        assert rows[0].new_values["name"] == "Clubs"
        assert rows[0].performed_at == clock.now()
        assert rows[0].ip_address == "10.0.0.5"

    def test_lifecycle_fields_cannot_be_set(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity

        with pytest.raises(ValidationError) as exc_info:
            create_entity(
                db, "categories", {"name": "Sneaky", "deleted_at": "2025-01-01T00:00:00"}, admin, clock
            )

        assert exc_info.value.details[0]["field"] == "deleted_at"

    def test_missing_required_field(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity

        with pytest.raises(ValidationError):
            create_entity(db, "announcements", {"title": "No body"}, admin, clock)

    def test_window_must_not_be_inverted(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity

        with pytest.raises(ValidationError, match="visibility_end_at"):
            create_entity(
                db,
                "announcements",
                {
                    "title": "Backwards",
                    "content": "x",
                    "visibility_start_at": "2025-06-05T00:00:00",
                    "visibility_end_at": "2025-06-01T00:00:00",
                },
                admin,
                clock,
            )

    def test_aware_window_bounds_are_stored_school_local(self, db, admin, clock):
        from bulletin.services.entity_store import create_entity

        entity = create_entity(
            db,
            "announcements",
            {
                "title": "Enrollment",
                "content": "x",
                "visibility_start_at": "2025-09-03T23:00:00+00:00",
                "visibility_end_at": "2025-09-10T17:00:00+08:00",
            },
            admin,
            clock,
        )

        assert entity.visibility_start_at == datetime(2025, 9, 4, 7, 0)
        assert entity.visibility_end_at == datetime(2025, 9, 10, 17, 0)

    def test_mixed_naive_and_aware_bounds(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity

        entity = create_entity(
            db,
            "announcements",
            {
                "title": "Mixed",
                "content": "x",
                "visibility_start_at": "2025-09-04T07:00:00+08:00",
                "visibility_end_at": "2025-09-10T17:00:00",
            },
            admin,
            clock,
        )
        assert entity.visibility_start_at == datetime(2025, 9, 4, 7, 0)

        with pytest.raises(ValidationError, match="visibility_end_at"):
            create_entity(
                db,
                "announcements",
                {
                    "title": "Inverted",
                    "content": "x",
                    "visibility_start_at": "2025-09-04T07:00:00",
                    "visibility_end_at": "2025-09-03T22:00:00+00:00",
                },
                admin,
                clock,
            )

    def test_aware_end_bound_decides_visibility(self, db, admin, clock):
        from bulletin.services.entity_store import create_entity, find_active

        # 02:00 UTC is 10:00 in Manila, an hour after the pinned clock
        entity = create_entity(
            db,
            "announcements",
            {"title": "Assembly", "content": "x", "is_active": True, "visibility_end_at": "2025-06-02T02:00:00+00:00"},
            admin,
            clock,
        )

        assert [e.id for e in find_active(db, "announcements", clock.now()).items] == [entity.id]
        clock.advance(hours=1, minutes=1)
        assert find_active(db, "announcements", clock.now()).items == []

    def test_event_end_date_before_start(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity

        with pytest.raises(ValidationError, match="end_date"):
            create_entity(
                db,
                "school_calendar",
                {"title": "Retreat", "event_date": "2025-06-10", "end_date": "2025-06-09"},
                admin,
                clock,
            )

    def test_unknown_kind(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity

        with pytest.raises(ValidationError, match="Unknown content kind"):
            create_entity(db, "students", {"name": "x"}, admin, clock)

    def test_no_record_for_rejected_create(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.models import AuditLog
        from bulletin.services.entity_store import create_entity

        with pytest.raises(ValidationError):
            create_entity(db, "categories", {}, admin, clock)

        assert db.query(AuditLog).count() == 0


class TestOrderIndex:
    """Display-position bookkeeping for ordered collections."""

    def test_positions_are_assigned_in_sequence(self, db, admin, clock):
        from bulletin.services.entity_store import create_entity

        first = create_entity(db, "welcome_cards", {"title": "Hello"}, admin, clock)
        second = create_entity(db, "welcome_cards", {"title": "Again"}, admin, clock)

        assert (first.order_index, second.order_index) == (0, 1)

    def test_taken_position_is_rejected(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity

        create_entity(db, "login_carousel_images", {"image_path": "a.png", "order_index": 3}, admin, clock)

        with pytest.raises(ValidationError, match="order_index 3"):
            create_entity(db, "login_carousel_images", {"image_path": "b.png", "order_index": 3}, admin, clock)

    def test_archived_rows_free_their_position(self, db, admin, clock):
        from bulletin.services.archival import archive
        from bulletin.services.entity_store import create_entity

        old = create_entity(db, "welcome_cards", {"title": "Old", "order_index": 0}, admin, clock)
        archive(db, "welcome_cards", old.id, admin, clock)

        new = create_entity(db, "welcome_cards", {"title": "New", "order_index": 0}, admin, clock)
        assert new.order_index == 0

    def test_update_into_taken_position(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity, update_entity

        create_entity(db, "welcome_cards", {"title": "A"}, admin, clock)
        b = create_entity(db, "welcome_cards", {"title": "B"}, admin, clock)

        with pytest.raises(ValidationError):
            update_entity(db, "welcome_cards", b.id, {"order_index": 0}, admin, clock)


class TestUpdateEntity:
    """Tests for update_entity()."""

    def test_partial_update_records_only_changes(self, db, admin, clock, audit_rows):
        from bulletin.services.entity_store import create_entity, update_entity

        entity = create_entity(db, "categories", {"name": "Arts", "color": "#112233"}, admin, clock)
        clock.advance(minutes=5)

        updated = update_entity(db, "categories", entity.id, {"name": "Arts & Music", "color": "#112233"}, admin, clock)

        assert updated.name == "Arts & Music"
        assert updated.updated_at == clock.now()
        record = audit_rows("categories", entity.id)[-1]
        assert record.action_type == "UPDATE"
        assert record.old_values == {"name": "Arts"}
        assert record.new_values == {"name": "Arts & Music"}

    def test_is_active_is_not_updatable(self, db, admin, clock, audit_rows):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity, update_entity

        entity = create_entity(db, "categories", {"name": "Chess"}, admin, clock)

        with pytest.raises(ValidationError) as exc_info:
            update_entity(db, "categories", entity.id, {"is_active": False}, admin, clock)

        assert exc_info.value.details[0]["field"] == "is_active"
        assert [r.action_type for r in audit_rows("categories", entity.id)] == ["CREATE"]

    def test_update_converts_aware_bounds(self, db, admin, clock):
        from bulletin.services.entity_store import create_entity, update_entity

        entity = create_entity(
            db, "announcements",
            {"title": "Fair", "content": "x", "visibility_start_at": "2025-06-01T08:00:00"},
            admin, clock,
        )

        updated = update_entity(
            db, "announcements", entity.id, {"visibility_end_at": "2025-06-05T09:00:00Z"}, admin, clock
        )

        assert updated.visibility_end_at == datetime(2025, 6, 5, 17, 0)

    def test_archived_entity_is_not_updatable(self, db, admin, clock):
        from bulletin.errors import NotFoundError
        from bulletin.services.archival import archive
        from bulletin.services.entity_store import create_entity, update_entity

        entity = create_entity(db, "categories", {"name": "Old"}, admin, clock)
        archive(db, "categories", entity.id, admin, clock)

        with pytest.raises(NotFoundError):
            update_entity(db, "categories", entity.id, {"name": "New"}, admin, clock)

    def test_empty_update_is_rejected(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import create_entity, update_entity

        entity = create_entity(db, "categories", {"name": "Same"}, admin, clock)

        with pytest.raises(ValidationError, match="No fields"):
            update_entity(db, "categories", entity.id, {}, admin, clock)

    def test_update_missing_entity(self, db, admin, clock):
        from bulletin.errors import NotFoundError
        from bulletin.services.entity_store import update_entity

        with pytest.raises(NotFoundError):
            update_entity(db, "categories", 999, {"name": "Ghost"}, admin, clock)


class TestLookups:
    """Tests for get_entity() and the listings."""

    @pytest.fixture
    def announcements(self, db, admin, clock):
        from bulletin.services.archival import archive
        from bulletin.services.entity_store import create_entity

        now = clock.now()
        live = create_entity(db, "announcements", {"title": "Live", "content": "x", "is_active": True}, admin, clock)
        draft = create_entity(db, "announcements", {"title": "Draft", "content": "x"}, admin, clock)
        scheduled = create_entity(
            db,
            "announcements",
            {
                "title": "Tomorrow",
                "content": "x",
                "is_active": True,
                "visibility_start_at": (now + timedelta(days=1)).isoformat(),
            },
            admin,
            clock,
        )
        gone = create_entity(db, "announcements", {"title": "Gone", "content": "x", "is_active": True}, admin, clock)
        archive(db, "announcements", gone.id, admin, clock)
        return {"live": live.id, "draft": draft.id, "scheduled": scheduled.id, "gone": gone.id}

    def test_scopes(self, db, announcements):
        from bulletin.errors import NotFoundError
        from bulletin.models import EntityScope
        from bulletin.services.entity_store import get_entity

        gone = announcements["gone"]
        with pytest.raises(NotFoundError):
            get_entity(db, "announcements", gone)
        assert get_entity(db, "announcements", gone, EntityScope.ARCHIVED).id == gone
        assert get_entity(db, "announcements", gone, EntityScope.ANY).id == gone

        with pytest.raises(NotFoundError):
            get_entity(db, "announcements", announcements["live"], EntityScope.ARCHIVED)

    def test_find_active_uses_supplied_instant(self, db, announcements, clock):
        from bulletin.services.entity_store import find_active

        today = find_active(db, "announcements", clock.now())
        assert [e.id for e in today.items] == [announcements["live"]]

        later = find_active(db, "announcements", clock.now() + timedelta(days=2))
        assert {e.id for e in later.items} == {announcements["live"], announcements["scheduled"]}

    def test_find_active_refuses_lifecycle_filters(self, db, announcements, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import find_active

        with pytest.raises(ValidationError):
            find_active(db, "announcements", clock.now(), filters={"is_active": False})

    def test_unknown_filter_field(self, db, announcements):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import find_all

        with pytest.raises(ValidationError, match="Unknown filter"):
            find_all(db, "announcements", filters={"colour": "red"})

    def test_find_all_and_archived(self, db, announcements):
        from bulletin.services.entity_store import find_all, find_archived

        live = find_all(db, "announcements")
        archived = find_archived(db, "announcements")

        assert live.total == 3
        assert announcements["gone"] not in {e.id for e in live.items}
        assert [e.id for e in archived.items] == [announcements["gone"]]

    def test_pagination(self, db, announcements):
        from bulletin.services.entity_store import find_all

        page = find_all(db, "announcements", limit=2, offset=1)

        assert page.total == 3
        assert len(page.items) == 2
        assert (page.limit, page.offset) == (2, 1)


class TestReorder:
    """Tests for reorder_entities()."""

    @pytest.fixture
    def cards(self, db, admin, clock):
        from bulletin.services.entity_store import create_entity

        return [create_entity(db, "welcome_cards", {"title": t}, admin, clock).id for t in ("A", "B", "C")]

    def test_swap_positions(self, db, admin, clock, cards, audit_rows):
        from bulletin.models import WelcomeCard
        from bulletin.services.entity_store import reorder_entities

        a, b, c = cards
        reorder_entities(db, "welcome_cards", [(a, 1), (b, 0)], admin, clock)

        positions = {w.id: w.order_index for w in db.query(WelcomeCard).all()}
        assert positions == {a: 1, b: 0, c: 2}

        moved = [r for r in audit_rows("welcome_cards") if r.action_type == "UPDATE"]
        assert len(moved) == 2
        assert all(r.description.endswith(": reordered") for r in moved)

    def test_clash_with_entry_outside_request(self, db, admin, clock, cards):
        from bulletin.errors import ValidationError
        from bulletin.models import WelcomeCard
        from bulletin.services.entity_store import reorder_entities

        a, _, _ = cards
        with pytest.raises(ValidationError, match="outside this request"):
            reorder_entities(db, "welcome_cards", [(a, 2)], admin, clock)

        assert db.get(WelcomeCard, a).order_index == 0

    def test_duplicate_targets(self, db, admin, clock, cards):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import reorder_entities

        a, b, _ = cards
        with pytest.raises(ValidationError):
            reorder_entities(db, "welcome_cards", [(a, 5), (b, 5)], admin, clock)

    def test_missing_entry(self, db, admin, clock, cards):
        from bulletin.errors import NotFoundError
        from bulletin.services.entity_store import reorder_entities

        with pytest.raises(NotFoundError):
            reorder_entities(db, "welcome_cards", [(cards[0], 4), (999, 5)], admin, clock)

    def test_unordered_kind(self, db, admin, clock):
        from bulletin.errors import ValidationError
        from bulletin.services.entity_store import reorder_entities

        with pytest.raises(ValidationError, match="no display order"):
            reorder_entities(db, "categories", [(1, 0)], admin, clock)
