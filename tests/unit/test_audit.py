"""
Tests for the audit recorder.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError


class TestActorLabel:
    """Tests for Actor.label."""

    def test_identifier_wins(self):
        from bulletin.services.audit import Actor

        assert Actor(user_type="admin", user_id=3, identifier="a@school.edu").label == "a@school.edu"

    def test_falls_back_to_type_and_id(self):
        from bulletin.services.audit import Actor

        assert Actor(user_type="student", user_id=2021001).label == "Student ID 2021001"

    def test_system(self):
        from bulletin.services.audit import Actor

        assert Actor.system().label == "system"


class TestDescribe:
    """Framing comes from the outcome flag alone."""

    def test_success(self):
        from bulletin.models import AuditAction
        from bulletin.services.audit import Actor, describe

        actor = Actor(identifier="registrar@school.edu")
        text = describe(AuditAction.RESTORE, "announcements", 8, actor, succeeded=True)

        assert text == "registrar@school.edu restored announcements record ID 8"

    def test_failure_with_reason(self):
        from bulletin.models import AuditAction
        from bulletin.services.audit import Actor, describe

        actor = Actor(identifier="registrar@school.edu")
        text = describe(AuditAction.DELETE, "announcements", 8, actor, succeeded=False, reason="already archived")

        assert text == "registrar@school.edu failed to archive announcements record ID 8: already archived"

    @pytest.mark.parametrize(
        "succeeded, expected",
        [
            (True, "LOGOUT successful for 2021001"),
            (False, "LOGOUT failed for 2021001"),
        ],
    )
    def test_logout_framing_follows_outcome(self, succeeded, expected):
        from bulletin.models import AuditAction
        from bulletin.services.audit import Actor, describe

        actor = Actor(user_type="student", user_id=5, identifier="2021001")

        assert describe(AuditAction.LOGOUT, "authentication", 5, actor, succeeded) == expected


@pytest.mark.sqlite
class TestRecord:
    """Tests for record() and record_session_event()."""

    def test_successful_logout_is_never_recorded_as_failed(self, db, clock, audit_rows):
        from bulletin.models import AuditAction
        from bulletin.services.audit import Actor, record_session_event

        student = Actor(user_type="student", user_id=5, identifier="2021001")

        entry = record_session_event(db, AuditAction.LOGOUT, student, succeeded=True, clock=clock)

        assert entry is not None
        rows = audit_rows("authentication", 5)
        assert len(rows) == 1
        assert rows[0].action_type == "LOGOUT"
        assert rows[0].description == "LOGOUT successful for 2021001"
        assert rows[0].user_type == "student"

    def test_failed_login_keeps_reason(self, db, clock, audit_rows):
        from bulletin.models import AuditAction
        from bulletin.services.audit import Actor, record_session_event

        student = Actor(user_type="student", user_id=5, identifier="2021001")

        record_session_event(db, AuditAction.LOGIN, student, succeeded=False, clock=clock, reason="bad password")

        row = audit_rows("authentication", 5)[0]
        assert row.description == "LOGIN failed for 2021001: bad password"
        assert row.new_values == {"reason": "bad password"}

    def test_session_event_is_stamped_from_the_clock(self, db, clock, audit_rows):
        from bulletin.models import AuditAction
        from bulletin.services.audit import Actor, list_records, record_session_event

        student = Actor(user_type="student", user_id=5, identifier="2021001")

        record_session_event(db, AuditAction.LOGIN, student, succeeded=True, clock=clock)
        clock.advance(minutes=30)
        record_session_event(db, AuditAction.LOGOUT, student, succeeded=True, clock=clock)

        rows = audit_rows("authentication", 5)
        assert [r.performed_at for r in rows] == [datetime(2025, 6, 2, 9, 0), datetime(2025, 6, 2, 9, 30)]
        records, total = list_records(db, since=datetime(2025, 6, 2, 9, 15))
        assert total == 1
        assert records[0].action_type == "LOGOUT"

    def test_session_event_rejects_other_actions(self, db, clock):
        from bulletin.models import AuditAction
        from bulletin.services.audit import Actor, record_session_event

        with pytest.raises(ValueError):
            record_session_event(db, AuditAction.DELETE, Actor.system(), succeeded=True, clock=clock)

    def test_audit_failure_keeps_business_change(self, db, clock):
        from bulletin.models import AuditAction, AuditLog, Category
        from bulletin.services.audit import Actor, record

        category = Category(name="Library")
        db.add(category)

        with patch.object(db, "begin_nested", side_effect=SQLAlchemyError("audit_logs unavailable")):
            entry = record(
                db, AuditAction.CREATE, "categories", None, "system created categories record", Actor.system(),
                performed_at=clock.now(),
            )
        db.commit()

        assert entry is None
        assert db.query(Category).filter(Category.name == "Library").count() == 1
        assert db.query(AuditLog).count() == 0

    def test_archive_survives_audit_failure(self, db, admin, clock):
        from bulletin.models import AuditLog, Category
        from bulletin.services.archival import archive

        category = Category(name="Old club")
        db.add(category)
        db.commit()

        with patch.object(db, "begin_nested", side_effect=SQLAlchemyError("audit_logs unavailable")):
            archived = archive(db, "categories", category.id, admin, clock)

        assert archived.deleted_at == clock.now()
        assert db.query(AuditLog).count() == 0

    def test_record_does_not_commit(self, db, clock):
        from bulletin.models import AuditAction, AuditLog
        from bulletin.services.audit import Actor, record

        record(
            db, AuditAction.UPDATE, "categories", 1, "system updated categories record ID 1", Actor.system(),
            performed_at=clock.now(),
        )
        db.rollback()

        assert db.query(AuditLog).count() == 0


@pytest.mark.sqlite
class TestQueries:
    """Tests for list_records() and history()."""

    @pytest.fixture
    def trail(self, db):
        from bulletin.models import AuditAction
        from bulletin.services.audit import Actor, record

        start = datetime(2025, 6, 1, 8, 0)
        admin = Actor(user_type="admin", user_id=1)
        entries = [
            (AuditAction.CREATE, "announcements", 1),
            (AuditAction.UPDATE, "announcements", 1),
            (AuditAction.DELETE, "announcements", 1),
            (AuditAction.CREATE, "welcome_cards", 4),
        ]
        for minutes, (action, table, target) in enumerate(entries):
            record(db, action, table, target, f"{action.value} {table} {target}", admin,
                   performed_at=start + timedelta(minutes=minutes))
        db.commit()
        return start

    def test_list_newest_first_with_total(self, db, trail):
        from bulletin.services.audit import list_records

        records, total = list_records(db, limit=2)

        assert total == 4
        assert [r.description for r in records] == ["CREATE welcome_cards 4", "DELETE announcements 1"]

    def test_list_filters(self, db, trail):
        from bulletin.models import AuditAction
        from bulletin.services.audit import list_records

        records, total = list_records(db, target_table="announcements", action_type=AuditAction.UPDATE)
        assert total == 1
        assert records[0].action_type == "UPDATE"

        records, total = list_records(db, since=trail + timedelta(minutes=2))
        assert total == 2

    def test_history_oldest_first(self, db, trail):
        from bulletin.services.audit import history

        records = history(db, "announcements", 1)

        assert [r.action_type for r in records] == ["CREATE", "UPDATE", "DELETE"]

    def test_audit_to_dict(self, db, trail):
        from bulletin.services.audit import audit_to_dict, history

        data = audit_to_dict(history(db, "welcome_cards", 4)[0])

        assert data["target_table"] == "welcome_cards"
        assert data["target_id"] == 4
        assert data["user_type"] == "admin"
        assert data["performed_at"] == trail + timedelta(minutes=3)
