"""Initial exchange management schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

Creates users and sessions, exchanges with participants and stage history,
tasks, templates, documents, messages, notifications, and the audit trail
with its comment, like and assignment tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str | None = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def _user_fk(column: str, table: str, ondelete: str = 'SET NULL') -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        [column], ['users.id'], ondelete=ondelete, name=op.f(f'fk_{table}_{column}_users')
    )


def upgrade() -> None:
    """Apply schema changes."""
    op.create_table(
        'users',
        sa.Column('id', UUID, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('company', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('two_fa_enabled', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('admin', 'coordinator', 'client', 'third_party', 'agency')",
            name=op.f('ck_users_valid_role'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)

    op.create_table(
        'refresh_tokens',
        sa.Column('id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(updated=False),
        _user_fk('user_id', 'refresh_tokens', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_refresh_tokens')),
        sa.UniqueConstraint('user_id', name='uq_refresh_tokens_user_id'),
    )
    op.create_index(op.f('ix_refresh_tokens_user_id'), 'refresh_tokens', ['user_id'], unique=False)
    op.create_index(op.f('ix_refresh_tokens_token_hash'), 'refresh_tokens', ['token_hash'], unique=False)

    op.create_table(
        'exchanges',
        sa.Column('id', UUID, nullable=False),
        sa.Column('exchange_number', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('exchange_type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('stage', sa.String(length=50), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('risk_level', sa.String(length=20), nullable=False),
        sa.Column('compliance_status', sa.String(length=20), nullable=False),
        sa.Column('client_id', UUID, nullable=True),
        sa.Column('coordinator_id', UUID, nullable=True),
        sa.Column('relinquished_property_address', sa.Text(), nullable=True),
        sa.Column('relinquished_sale_price', sa.Numeric(15, 2), nullable=True),
        sa.Column('relinquished_closing_date', sa.Date(), nullable=True),
        sa.Column('exchange_value', sa.Numeric(15, 2), nullable=True),
        sa.Column('relinquished_value', sa.Numeric(15, 2), nullable=True),
        sa.Column('replacement_value', sa.Numeric(15, 2), nullable=True),
        sa.Column('replacement_properties', sa.JSON(), nullable=False),
        sa.Column('qi_company', sa.String(length=255), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('identification_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completion_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('day_45_start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stage_checklist', sa.JSON(), nullable=False),
        sa.Column('stage_data', sa.JSON(), nullable=False),
        sa.Column('stage_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('client_notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_by', UUID, nullable=True),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PENDING', '45D', '180D', 'COMPLETED', 'TERMINATED', 'ON_HOLD')",
            name=op.f('ck_exchanges_valid_status'),
        ),
        sa.CheckConstraint(
            "priority IN ('LOW', 'MEDIUM', 'HIGH', 'URGENT')",
            name=op.f('ck_exchanges_valid_priority'),
        ),
        _user_fk('client_id', 'exchanges'),
        _user_fk('coordinator_id', 'exchanges'),
        _user_fk('created_by', 'exchanges'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_exchanges')),
    )
    op.create_index(op.f('ix_exchanges_exchange_number'), 'exchanges', ['exchange_number'], unique=True)
    op.create_index(op.f('ix_exchanges_status'), 'exchanges', ['status'], unique=False)
    op.create_index(op.f('ix_exchanges_stage'), 'exchanges', ['stage'], unique=False)
    op.create_index(op.f('ix_exchanges_client_id'), 'exchanges', ['client_id'], unique=False)
    op.create_index(op.f('ix_exchanges_coordinator_id'), 'exchanges', ['coordinator_id'], unique=False)
    op.create_index(op.f('ix_exchanges_created_at'), 'exchanges', ['created_at'], unique=False)

    op.create_table(
        'exchange_participants',
        sa.Column('id', UUID, nullable=False),
        sa.Column('exchange_id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('access_level', sa.String(length=20), nullable=True),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('added_by', UUID, nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "access_level IS NULL OR access_level IN ('none', 'read', 'write', 'admin')",
            name=op.f('ck_exchange_participants_valid_access_level'),
        ),
        sa.ForeignKeyConstraint(
            ['exchange_id'], ['exchanges.id'], ondelete='CASCADE',
            name=op.f('fk_exchange_participants_exchange_id_exchanges'),
        ),
        _user_fk('user_id', 'exchange_participants', ondelete='CASCADE'),
        _user_fk('added_by', 'exchange_participants'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_exchange_participants')),
        sa.UniqueConstraint('exchange_id', 'user_id', name='uq_exchange_participants_exchange_user'),
    )
    op.create_index(
        op.f('ix_exchange_participants_exchange_id'), 'exchange_participants', ['exchange_id'], unique=False
    )
    op.create_index(
        op.f('ix_exchange_participants_user_id'), 'exchange_participants', ['user_id'], unique=False
    )

    op.create_table(
        'exchange_stage_history',
        sa.Column('id', UUID, nullable=False),
        sa.Column('exchange_id', UUID, nullable=False),
        sa.Column('stage', sa.String(length=50), nullable=False),
        sa.Column('entered_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('changed_by', UUID, nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ['exchange_id'], ['exchanges.id'], ondelete='CASCADE',
            name=op.f('fk_exchange_stage_history_exchange_id_exchanges'),
        ),
        _user_fk('changed_by', 'exchange_stage_history'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_exchange_stage_history')),
    )
    op.create_index(
        op.f('ix_exchange_stage_history_exchange_id'), 'exchange_stage_history', ['exchange_id'], unique=False
    )

    op.create_table(
        'tasks',
        sa.Column('id', UUID, nullable=False),
        sa.Column('exchange_id', UUID, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('assigned_to', UUID, nullable=True),
        sa.Column('created_by', UUID, nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PENDING', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED')",
            name=op.f('ck_tasks_valid_status'),
        ),
        sa.ForeignKeyConstraint(
            ['exchange_id'], ['exchanges.id'], ondelete='CASCADE',
            name=op.f('fk_tasks_exchange_id_exchanges'),
        ),
        _user_fk('assigned_to', 'tasks'),
        _user_fk('created_by', 'tasks'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_tasks')),
    )
    op.create_index(op.f('ix_tasks_exchange_id'), 'tasks', ['exchange_id'], unique=False)
    op.create_index(op.f('ix_tasks_status'), 'tasks', ['status'], unique=False)
    op.create_index(op.f('ix_tasks_assigned_to'), 'tasks', ['assigned_to'], unique=False)
    op.create_index(op.f('ix_tasks_due_date'), 'tasks', ['due_date'], unique=False)

    op.create_table(
        'document_templates',
        sa.Column('id', UUID, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_by', UUID, nullable=True),
        *_timestamps(),
        _user_fk('created_by', 'document_templates'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_document_templates')),
    )
    op.create_index(op.f('ix_document_templates_category'), 'document_templates', ['category'], unique=False)

    op.create_table(
        'documents',
        sa.Column('id', UUID, nullable=False),
        sa.Column('exchange_id', UUID, nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('original_filename', sa.String(length=255), nullable=False),
        sa.Column('content_type', sa.String(length=255), nullable=False),
        sa.Column('size', sa.BigInteger(), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('storage_path', sa.String(length=1024), nullable=False),
        sa.Column('pin_hash', sa.String(length=255), nullable=True),
        sa.Column('is_template_generated', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('template_id', UUID, nullable=True),
        sa.Column('uploaded_by', UUID, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['exchange_id'], ['exchanges.id'], ondelete='CASCADE',
            name=op.f('fk_documents_exchange_id_exchanges'),
        ),
        sa.ForeignKeyConstraint(
            ['template_id'], ['document_templates.id'], ondelete='SET NULL',
            name=op.f('fk_documents_template_id_document_templates'),
        ),
        _user_fk('uploaded_by', 'documents'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_documents')),
    )
    op.create_index(op.f('ix_documents_exchange_id'), 'documents', ['exchange_id'], unique=False)
    op.create_index(op.f('ix_documents_created_at'), 'documents', ['created_at'], unique=False)

    op.create_table(
        'messages',
        sa.Column('id', UUID, nullable=False),
        sa.Column('exchange_id', UUID, nullable=False),
        sa.Column('sender_id', UUID, nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('attachment_id', UUID, nullable=True),
        sa.Column('read_by', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['exchange_id'], ['exchanges.id'], ondelete='CASCADE',
            name=op.f('fk_messages_exchange_id_exchanges'),
        ),
        sa.ForeignKeyConstraint(
            ['attachment_id'], ['documents.id'], ondelete='SET NULL',
            name=op.f('fk_messages_attachment_id_documents'),
        ),
        _user_fk('sender_id', 'messages'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_messages')),
    )
    op.create_index(op.f('ix_messages_exchange_id'), 'messages', ['exchange_id'], unique=False)
    op.create_index(op.f('ix_messages_sender_id'), 'messages', ['sender_id'], unique=False)
    op.create_index(op.f('ix_messages_created_at'), 'messages', ['created_at'], unique=False)

    op.create_table(
        'notifications',
        sa.Column('id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('exchange_id', UUID, nullable=True),
        sa.Column('urgent', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        _user_fk('user_id', 'notifications', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['exchange_id'], ['exchanges.id'], ondelete='CASCADE',
            name=op.f('fk_notifications_exchange_id_exchanges'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_notifications')),
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)
    op.create_index(op.f('ix_notifications_exchange_id'), 'notifications', ['exchange_id'], unique=False)
    op.create_index(op.f('ix_notifications_is_read'), 'notifications', ['is_read'], unique=False)
    op.create_index(op.f('ix_notifications_created_at'), 'notifications', ['created_at'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', UUID, nullable=False),
        sa.Column('actor_id', UUID, nullable=True),
        sa.Column('actor_type', sa.String(length=50), nullable=False),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('entity_type', sa.String(length=100), nullable=False),
        sa.Column('entity_id', sa.String(length=255), nullable=False),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint(
            "actor_type IN ('user', 'system', 'anonymous')",
            name=op.f('ck_audit_logs_valid_actor_type'),
        ),
        _user_fk('actor_id', 'audit_logs'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_audit_logs')),
    )
    for column in ('actor_id', 'actor_type', 'action', 'entity_type', 'entity_id', 'created_at'):
        op.create_index(op.f(f'ix_audit_logs_{column}'), 'audit_logs', [column], unique=False)

    op.create_table(
        'audit_comments',
        sa.Column('id', UUID, nullable=False),
        sa.Column('audit_log_id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=True),
        sa.Column('parent_id', UUID, nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('mentions', sa.JSON(), nullable=False),
        sa.Column('is_edited', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('edited_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(
            ['audit_log_id'], ['audit_logs.id'], ondelete='CASCADE',
            name=op.f('fk_audit_comments_audit_log_id_audit_logs'),
        ),
        sa.ForeignKeyConstraint(
            ['parent_id'], ['audit_comments.id'], ondelete='CASCADE',
            name=op.f('fk_audit_comments_parent_id_audit_comments'),
        ),
        _user_fk('user_id', 'audit_comments'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_audit_comments')),
    )
    op.create_index(op.f('ix_audit_comments_audit_log_id'), 'audit_comments', ['audit_log_id'], unique=False)
    op.create_index(op.f('ix_audit_comments_user_id'), 'audit_comments', ['user_id'], unique=False)

    op.create_table(
        'audit_likes',
        sa.Column('id', UUID, nullable=False),
        sa.Column('audit_log_id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('reaction_type', sa.String(length=20), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(
            ['audit_log_id'], ['audit_logs.id'], ondelete='CASCADE',
            name=op.f('fk_audit_likes_audit_log_id_audit_logs'),
        ),
        _user_fk('user_id', 'audit_likes', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_audit_likes')),
        sa.UniqueConstraint('audit_log_id', 'user_id', name='uq_audit_likes_log_user'),
    )
    op.create_index(op.f('ix_audit_likes_audit_log_id'), 'audit_likes', ['audit_log_id'], unique=False)

    op.create_table(
        'audit_assignments',
        sa.Column('id', UUID, nullable=False),
        sa.Column('audit_log_id', UUID, nullable=False),
        sa.Column('assigned_to', UUID, nullable=False),
        sa.Column('assigned_by', UUID, nullable=True),
        sa.Column('assignment_type', sa.String(length=30), nullable=False),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('escalated', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('open', 'in_progress', 'resolved', 'dismissed')",
            name=op.f('ck_audit_assignments_valid_status'),
        ),
        sa.ForeignKeyConstraint(
            ['audit_log_id'], ['audit_logs.id'], ondelete='CASCADE',
            name=op.f('fk_audit_assignments_audit_log_id_audit_logs'),
        ),
        _user_fk('assigned_to', 'audit_assignments', ondelete='CASCADE'),
        _user_fk('assigned_by', 'audit_assignments'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_audit_assignments')),
    )
    op.create_index(
        op.f('ix_audit_assignments_audit_log_id'), 'audit_assignments', ['audit_log_id'], unique=False
    )
    op.create_index(
        op.f('ix_audit_assignments_assigned_to'), 'audit_assignments', ['assigned_to'], unique=False
    )


def downgrade() -> None:
    """Revert schema changes."""
    for table in (
        'audit_assignments',
        'audit_likes',
        'audit_comments',
        'audit_logs',
        'notifications',
        'messages',
        'documents',
        'document_templates',
        'tasks',
        'exchange_stage_history',
        'exchange_participants',
        'exchanges',
        'refresh_tokens',
        'users',
    ):
        op.drop_table(table)
