"""initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-19 04:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import mysql


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username')
    )

    # --- friend_requests ---
    op.create_table(
        'friend_requests',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('sender_id', sa.String(length=64), nullable=False),
        sa.Column('receiver_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), server_default='pending', nullable=False),
        sa.Column('pending_key', sa.String(length=160), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('sender_id <> receiver_id', name='chk_friend_requests_not_self'),
        sa.CheckConstraint("status IN ('pending', 'accepted', 'declined')", name='chk_friend_requests_status'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], name='fk_friend_requests_sender'),
        sa.ForeignKeyConstraint(['receiver_id'], ['users.id'], name='fk_friend_requests_receiver'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('uq_friend_requests_pending_pair', 'friend_requests', ['pending_key'], unique=True)
    op.create_index('idx_friend_requests_receiver', 'friend_requests', ['receiver_id', 'status'], unique=False)
    op.create_index('idx_friend_requests_sender', 'friend_requests', ['sender_id', 'status'], unique=False)

    # --- friendships ---
    op.create_table(
        'friendships',
        sa.Column('user1_id', sa.String(length=64), nullable=False),
        sa.Column('user2_id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('user1_id < user2_id', name='chk_friendships_order'),
        sa.ForeignKeyConstraint(['user1_id'], ['users.id'], name='fk_friendships_user1'),
        sa.ForeignKeyConstraint(['user2_id'], ['users.id'], name='fk_friendships_user2'),
        sa.PrimaryKeyConstraint('user1_id', 'user2_id')
    )
    op.create_index('idx_friendships_user2', 'friendships', ['user2_id'], unique=False)

    # --- messages ---
    op.create_table(
        'messages',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), autoincrement=True, nullable=False),
        sa.Column('sender_id', sa.String(length=64), nullable=False),
        sa.Column('receiver_id', sa.String(length=64), nullable=False),
        sa.Column('kind', sa.String(length=16), server_default='text', nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('image_payload', sa.Text().with_variant(mysql.MEDIUMTEXT(), 'mysql'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("kind IN ('text', 'image')", name='chk_messages_kind'),
        sa.CheckConstraint(
            "(kind = 'text' AND content IS NOT NULL AND image_payload IS NULL) OR "
            "(kind = 'image' AND image_payload IS NOT NULL AND content IS NULL)",
            name='chk_messages_payload'
        ),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], name='fk_messages_sender'),
        sa.ForeignKeyConstraint(['receiver_id'], ['users.id'], name='fk_messages_receiver'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_messages_pair_created', 'messages', ['sender_id', 'receiver_id', 'created_at'], unique=False)
    op.create_index('idx_messages_receiver_created', 'messages', ['receiver_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('messages')
    op.drop_table('friendships')
    op.drop_table('friend_requests')
    op.drop_table('users')
