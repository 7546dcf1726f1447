"""create booking engine schema

Revision ID: 1
Revises:
Create Date: 2025-03-01 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_ONLY = sa.text("status IN ('scheduled', 'confirmed')")


def upgrade():
    op.create_table(
        'centers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('offers_lab_tests', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('lab_test_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_centers_id', 'centers', ['id'])
    op.create_index('idx_centers_active', 'centers', ['is_active'])

    op.create_table(
        'providers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('specialty', sa.String(100), nullable=True),
        sa.Column('consultation_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('home_visits_available', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('home_visit_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_providers_id', 'providers', ['id'])

    op.create_table(
        'provider_centers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=False),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('provider_id', 'center_id', name='uq_provider_center'),
    )
    op.create_index('ix_provider_centers_id', 'provider_centers', ['id'])
    op.create_index('ix_provider_centers_provider_id', 'provider_centers', ['provider_id'])
    op.create_index('ix_provider_centers_center_id', 'provider_centers', ['center_id'])

    op.create_table(
        'schedule_rules',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider_key', sa.String(40), nullable=False),
        sa.Column('location_key', sa.String(40), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('slot_duration_minutes', sa.Integer(), nullable=False),
        sa.Column('break_start', sa.Time(), nullable=True),
        sa.Column('break_end', sa.Time(), nullable=True),
        sa.Column('consultation_fee', sa.Numeric(10, 2), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('provider_key', 'location_key', 'day_of_week', name='uq_rule_provider_location_day'),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_rule_day_of_week'),
        sa.CheckConstraint('slot_duration_minutes > 0', name='ck_rule_positive_duration'),
    )
    op.create_index('ix_schedule_rules_id', 'schedule_rules', ['id'])
    op.create_index('idx_rules_provider_location', 'schedule_rules', ['provider_key', 'location_key'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_type', sa.Enum('appointment', 'lab_test', name='booking_type'), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=True),
        sa.Column('center_id', sa.Integer(), sa.ForeignKey('centers.id'), nullable=True),
        sa.Column('provider_key', sa.String(40), nullable=False),
        sa.Column('location_key', sa.String(40), nullable=False),
        sa.Column('patient_id', sa.String(64), nullable=False),
        sa.Column('booking_date', sa.Date(), nullable=False),
        sa.Column('booking_time', sa.Time(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('scheduled', 'confirmed', 'completed', 'cancelled', name='booking_status'), nullable=False),
        sa.Column('fee', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('lab_test_type', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_by', sa.String(64), nullable=True),
        sa.Column('rescheduled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reschedule_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('visit_summary', sa.Text(), nullable=True),
    )
    op.create_index('ix_bookings_id', 'bookings', ['id'])
    op.create_index('idx_bookings_slot_lookup', 'bookings', ['provider_key', 'location_key', 'booking_date'])
    op.create_index('idx_bookings_patient_date', 'bookings', ['patient_id', 'booking_date'])
    op.create_index('idx_bookings_status', 'bookings', ['status'])
    # One active booking per (provider, location, date, time); cancelled/completed rows do not count
    op.create_index(
        'uq_bookings_active_slot', 'bookings',
        ['provider_key', 'location_key', 'booking_date', 'booking_time'],
        unique=True,
        sqlite_where=ACTIVE_ONLY,
        postgresql_where=ACTIVE_ONLY,
    )


def downgrade():
    op.drop_index('uq_bookings_active_slot', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('schedule_rules')
    op.drop_table('provider_centers')
    op.drop_table('providers')
    op.drop_table('centers')
    sa.Enum(name='booking_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='booking_type').drop(op.get_bind(), checkfirst=True)
