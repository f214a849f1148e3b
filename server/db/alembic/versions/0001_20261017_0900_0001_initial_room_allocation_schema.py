"""Initial room allocation schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create programs table
    op.create_table('programs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('packages', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(name) > 0', name='ck_program_name_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_programs_user_id'), 'programs', ['user_id'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('trip_id', sa.Integer(), nullable=False),
        sa.Column('client_name', sa.String(length=255), nullable=False),
        sa.Column('gender', sa.String(length=16), nullable=True),
        sa.Column('package_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('selected_hotel', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('related_persons', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "status IN ('confirmed', 'pending_approval', 'rejected')",
            name='ck_booking_status_valid'
        ),
        sa.ForeignKeyConstraint(['trip_id'], ['programs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)
    op.create_index(op.f('ix_bookings_trip_id'), 'bookings', ['trip_id'], unique=False)
    op.create_index(op.f('ix_bookings_client_name'), 'bookings', ['client_name'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    # Reverse family lookup: related_persons @> '[{"ID": <id>}]'
    op.create_index(
        'ix_bookings_related_persons',
        'bookings',
        ['related_persons'],
        unique=False,
        postgresql_using='gin',
        postgresql_ops={'related_persons': 'jsonb_path_ops'}
    )

    # Create room_managements table
    op.create_table('room_managements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('program_id', sa.Integer(), nullable=False),
        sa.Column('hotel_name', sa.String(length=255), nullable=False),
        sa.Column('rooms', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(hotel_name) > 0', name='ck_room_management_hotel_name_not_empty'),
        sa.CheckConstraint('version > 0', name='ck_room_management_version_positive'),
        sa.ForeignKeyConstraint(['program_id'], ['programs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'program_id', 'hotel_name', name='uq_room_management_hotel')
    )
    op.create_index(op.f('ix_room_managements_user_id'), 'room_managements', ['user_id'], unique=False)
    op.create_index(op.f('ix_room_managements_program_id'), 'room_managements', ['program_id'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('room_managements')
    op.drop_index('ix_bookings_related_persons', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('programs')
