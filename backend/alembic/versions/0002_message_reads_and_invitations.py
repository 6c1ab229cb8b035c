"""Message read receipts and exchange invitations

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18 15:00:00.000000

Moves message read state out of the messages.read_by JSON array into a
message_reads table so unread counts can be computed in SQL, and adds
exchange_invitations.
"""
import uuid
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str | None = '0002'
down_revision: Union[str, None] = '0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)


def _user_fk(column: str, table: str, ondelete: str = 'SET NULL') -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        [column], ['users.id'], ondelete=ondelete, name=op.f(f'fk_{table}_{column}_users')
    )


def _copy_read_by(receipts: sa.Table) -> None:
    bind = op.get_bind()
    messages = sa.table(
        'messages',
        sa.column('id', UUID),
        sa.column('read_by', sa.JSON()),
        sa.column('created_at', sa.DateTime(timezone=True)),
    )
    users = sa.table('users', sa.column('id', UUID))
    known = {row.id for row in bind.execute(sa.select(users.c.id))}

    rows = []
    for message in bind.execute(sa.select(messages)):
        seen = set()
        for raw in message.read_by or []:
            try:
                user_id = uuid.UUID(str(raw))
            except ValueError:
                continue
            if user_id in seen or user_id not in known:
                continue
            seen.add(user_id)
            rows.append(
                {
                    'id': uuid.uuid4(),
                    'message_id': message.id,
                    'user_id': user_id,
                    'read_at': message.created_at,
                }
            )
    if rows:
        op.bulk_insert(receipts, rows)


def upgrade() -> None:
    """Apply schema changes."""
    receipts = op.create_table(
        'message_reads',
        sa.Column('id', UUID, nullable=False),
        sa.Column('message_id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ['message_id'],
            ['messages.id'],
            ondelete='CASCADE',
            name=op.f('fk_message_reads_message_id_messages'),
        ),
        _user_fk('user_id', 'message_reads', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_message_reads')),
        sa.UniqueConstraint('message_id', 'user_id', name='uq_message_reads_message_user'),
    )
    op.create_index(op.f('ix_message_reads_message_id'), 'message_reads', ['message_id'], unique=False)
    op.create_index(op.f('ix_message_reads_user_id'), 'message_reads', ['user_id'], unique=False)
    _copy_read_by(receipts)
    op.drop_column('messages', 'read_by')

    op.create_table(
        'exchange_invitations',
        sa.Column('id', UUID, nullable=False),
        sa.Column('exchange_id', UUID, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('role', sa.String(length=50), nullable=False),
        sa.Column('access_level', sa.String(length=20), nullable=True),
        sa.Column('custom_message', sa.Text(), nullable=True),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('invited_by', UUID, nullable=True),
        sa.Column('user_id', UUID, nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', UUID, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'cancelled', 'expired')",
            name=op.f('ck_exchange_invitations_valid_status'),
        ),
        sa.CheckConstraint(
            "access_level IS NULL OR access_level IN ('none', 'read', 'write', 'admin')",
            name=op.f('ck_exchange_invitations_valid_access_level'),
        ),
        sa.ForeignKeyConstraint(
            ['exchange_id'],
            ['exchanges.id'],
            ondelete='CASCADE',
            name=op.f('fk_exchange_invitations_exchange_id_exchanges'),
        ),
        _user_fk('invited_by', 'exchange_invitations'),
        _user_fk('user_id', 'exchange_invitations'),
        _user_fk('cancelled_by', 'exchange_invitations'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_exchange_invitations')),
        sa.UniqueConstraint('token_hash', name=op.f('uq_exchange_invitations_token_hash')),
    )
    op.create_index(
        op.f('ix_exchange_invitations_exchange_id'), 'exchange_invitations', ['exchange_id'], unique=False
    )
    op.create_index(op.f('ix_exchange_invitations_email'), 'exchange_invitations', ['email'], unique=False)


def downgrade() -> None:
    """Revert schema changes."""
    op.drop_table('exchange_invitations')
    op.add_column(
        'messages',
        sa.Column('read_by', sa.JSON(), server_default=sa.text("'[]'"), nullable=False),
    )
    op.drop_table('message_reads')
