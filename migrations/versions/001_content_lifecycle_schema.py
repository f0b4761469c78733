"""Content lifecycle schema: content tables and audit trail.

Creates:
- categories, announcements, school_calendar, welcome_cards,
  login_carousel_images, each with the shared lifecycle columns
  (is_active, deleted_at, created_by, created_at, updated_at)
- audit_logs, the append-only trail of lifecycle transitions

Display order for welcome_cards and login_carousel_images is unique among
live rows only, enforced with partial unique indexes.

Revision ID: 001_content_lifecycle_schema
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_content_lifecycle_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _lifecycle_columns(default_active: str) -> list:
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=default_active),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    """Create content and audit tables."""

    # -------------------------------------------------------------------------
    # 1. categories
    # -------------------------------------------------------------------------
    print("  Creating categories table...")

    op.create_table(
        'categories',
        *_lifecycle_columns('true'),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.String(length=7), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_categories_deleted_at', 'categories', ['deleted_at'], unique=False)

    # -------------------------------------------------------------------------
    # 2. announcements (drafts by default)
    # -------------------------------------------------------------------------
    print("  Creating announcements table...")

    op.create_table(
        'announcements',
        *_lifecycle_columns('false'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('is_alert', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('visibility_start_at', sa.DateTime(), nullable=True),
        sa.Column('visibility_end_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
    )
    op.create_index('ix_announcements_deleted_at', 'announcements', ['deleted_at'], unique=False)
    op.create_index(
        'ix_announcements_visibility', 'announcements',
        ['visibility_start_at', 'visibility_end_at'], unique=False,
    )

    # -------------------------------------------------------------------------
    # 3. school_calendar
    # -------------------------------------------------------------------------
    print("  Creating school_calendar table...")

    op.create_table(
        'school_calendar',
        *_lifecycle_columns('true'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('event_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('is_holiday', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('holiday_type', sa.String(length=32), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
    )
    op.create_index('ix_school_calendar_deleted_at', 'school_calendar', ['deleted_at'], unique=False)
    op.create_index('ix_school_calendar_event_date', 'school_calendar', ['event_date'], unique=False)
    op.create_index('ix_school_calendar_is_holiday', 'school_calendar', ['is_holiday'], unique=False)

    # -------------------------------------------------------------------------
    # 4. Ordered collections
    # -------------------------------------------------------------------------
    print("  Creating welcome_cards and login_carousel_images tables...")

    op.create_table(
        'welcome_cards',
        *_lifecycle_columns('true'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_path', sa.String(length=512), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_welcome_cards_deleted_at', 'welcome_cards', ['deleted_at'], unique=False)
    op.create_index(
        'uq_welcome_cards_live_order_index', 'welcome_cards', ['order_index'],
        unique=True, postgresql_where=sa.text('deleted_at IS NULL'),
    )

    op.create_table(
        'login_carousel_images',
        *_lifecycle_columns('true'),
        sa.Column('image_path', sa.String(length=512), nullable=False),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_login_carousel_images_deleted_at', 'login_carousel_images', ['deleted_at'], unique=False,
    )
    op.create_index(
        'uq_login_carousel_images_live_order_index', 'login_carousel_images', ['order_index'],
        unique=True, postgresql_where=sa.text('deleted_at IS NULL'),
    )

    print("  Created 5 content tables")

    # -------------------------------------------------------------------------
    # 5. audit_logs
    # -------------------------------------------------------------------------
    print("  Creating audit_logs table...")

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_type', sa.String(length=16), nullable=False, server_default='system'),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action_type', sa.String(length=16), nullable=False),
        # No FK to content tables: audit rows outlive and span every table
        sa.Column('target_table', sa.String(length=64), nullable=False),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('old_values', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('new_values', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('performed_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_audit_logs_target', 'audit_logs',
        ['target_table', 'target_id', 'performed_at'], unique=False,
    )
    op.create_index('ix_audit_logs_action_type', 'audit_logs', ['action_type'], unique=False)
    op.create_index('ix_audit_logs_performed_at', 'audit_logs', ['performed_at'], unique=False)

    print("  Created audit_logs table with 3 indexes")


def downgrade() -> None:
    """Drop audit and content tables."""
    op.drop_index('ix_audit_logs_performed_at', table_name='audit_logs')
    op.drop_index('ix_audit_logs_action_type', table_name='audit_logs')
    op.drop_index('ix_audit_logs_target', table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('uq_login_carousel_images_live_order_index', table_name='login_carousel_images')
    op.drop_index('ix_login_carousel_images_deleted_at', table_name='login_carousel_images')
    op.drop_table('login_carousel_images')

    op.drop_index('uq_welcome_cards_live_order_index', table_name='welcome_cards')
    op.drop_index('ix_welcome_cards_deleted_at', table_name='welcome_cards')
    op.drop_table('welcome_cards')

    op.drop_index('ix_school_calendar_is_holiday', table_name='school_calendar')
    op.drop_index('ix_school_calendar_event_date', table_name='school_calendar')
    op.drop_index('ix_school_calendar_deleted_at', table_name='school_calendar')
    op.drop_table('school_calendar')

    op.drop_index('ix_announcements_visibility', table_name='announcements')
    op.drop_index('ix_announcements_deleted_at', table_name='announcements')
    op.drop_table('announcements')

    op.drop_index('ix_categories_deleted_at', table_name='categories')
    op.drop_table('categories')
