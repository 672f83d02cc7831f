"""create delivery zone, rule and validated address tables

Revision ID: create_delivery_zone_tables
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'create_delivery_zone_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'delivery_zones',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('center_lat', sa.DECIMAL(10, 8), nullable=True),
        sa.Column('center_lng', sa.DECIMAL(11, 8), nullable=True),
        sa.Column('radius_km', sa.DECIMAL(8, 2), nullable=True),
        sa.Column('polygon', sa.JSON(), nullable=True),
        sa.Column('base_cost', sa.DECIMAL(10, 2), nullable=False, server_default='0'),
        sa.Column('min_order_amount', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('free_shipping_threshold', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('default_eta_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('max_weight_kg', sa.DECIMAL(8, 2), nullable=True),
        sa.Column('always_open', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('map_color', sa.String(7), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_delivery_zones'),
        sa.UniqueConstraint('slug', name='uq_delivery_zones_slug'),
    )
    op.create_index('ix_delivery_zones_active', 'delivery_zones', ['is_active'])

    op.create_table(
        'districts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint('id', name='pk_districts'),
    )

    op.create_table(
        'zone_districts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('zone_id', sa.Integer(), nullable=False),
        sa.Column('district_id', sa.Integer(), nullable=False),
        sa.Column('priority', sa.SmallInteger(), nullable=False, server_default='1'),
        sa.Column('cost_override', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('extra_time_minutes', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_zone_districts'),
        sa.ForeignKeyConstraint(
            ['zone_id'], ['delivery_zones.id'],
            name='fk_zone_districts_zone_id_delivery_zones', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['district_id'], ['districts.id'],
            name='fk_zone_districts_district_id_districts', ondelete='CASCADE',
        ),
        sa.UniqueConstraint('zone_id', 'district_id', name='uq_zone_districts_zone_district'),
        sa.CheckConstraint('priority BETWEEN 1 AND 3', name='ck_zone_districts_priority_range'),
    )
    op.create_index('ix_zone_districts_district_active', 'zone_districts', ['district_id', 'is_active'])

    op.create_table(
        'zone_cost_tiers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('zone_id', sa.Integer(), nullable=False),
        sa.Column('distance_from_km', sa.DECIMAL(8, 2), nullable=False),
        sa.Column('distance_to_km', sa.DECIMAL(8, 2), nullable=False),
        sa.Column('additional_cost', sa.DECIMAL(10, 2), nullable=False, server_default='0'),
        sa.Column('extra_time_minutes', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_zone_cost_tiers'),
        sa.ForeignKeyConstraint(
            ['zone_id'], ['delivery_zones.id'],
            name='fk_zone_cost_tiers_zone_id_delivery_zones', ondelete='CASCADE',
        ),
        sa.CheckConstraint('distance_to_km > distance_from_km', name='ck_zone_cost_tiers_tier_range'),
    )
    op.create_index('ix_zone_cost_tiers_zone_active', 'zone_cost_tiers', ['zone_id', 'is_active'])

    op.create_table(
        'zone_weekly_schedules',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('zone_id', sa.Integer(), nullable=False),
        sa.Column('weekday', sa.SmallInteger(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('full_day', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.String(500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_zone_weekly_schedules'),
        sa.ForeignKeyConstraint(
            ['zone_id'], ['delivery_zones.id'],
            name='fk_zone_weekly_schedules_zone_id_delivery_zones', ondelete='CASCADE',
        ),
        sa.UniqueConstraint('zone_id', 'weekday', name='uq_zone_weekly_schedules_zone_weekday'),
        sa.CheckConstraint('weekday BETWEEN 0 AND 6', name='ck_zone_weekly_schedules_weekday_range'),
    )

    op.create_table(
        'zone_date_exceptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('zone_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('special_cost', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('eta_min_minutes', sa.Integer(), nullable=True),
        sa.Column('eta_max_minutes', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(500), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_zone_date_exceptions'),
        sa.ForeignKeyConstraint(
            ['zone_id'], ['delivery_zones.id'],
            name='fk_zone_date_exceptions_zone_id_delivery_zones', ondelete='CASCADE',
        ),
        sa.UniqueConstraint('zone_id', 'date', 'type', name='uq_zone_date_exceptions_zone_date_type'),
    )
    op.create_index('ix_zone_date_exceptions_zone_date', 'zone_date_exceptions', ['zone_id', 'date'])

    op.create_table(
        'validated_addresses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('address_id', sa.BigInteger(), nullable=False),
        sa.Column('lat', sa.DECIMAL(10, 8), nullable=False),
        sa.Column('lng', sa.DECIMAL(11, 8), nullable=False),
        sa.Column('district_id', sa.Integer(), nullable=True),
        sa.Column('zone_id', sa.Integer(), nullable=True),
        sa.Column('in_coverage', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('distance_km', sa.DECIMAL(8, 2), nullable=True),
        sa.Column('shipping_cost', sa.DECIMAL(10, 2), nullable=True),
        sa.Column('eta_minutes', sa.Integer(), nullable=True),
        sa.Column('last_validated_at', sa.DateTime(), nullable=False),
        sa.Column('validation_note', sa.String(500), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_validated_addresses'),
        sa.ForeignKeyConstraint(
            ['zone_id'], ['delivery_zones.id'],
            name='fk_validated_addresses_zone_id_delivery_zones', ondelete='SET NULL',
        ),
        sa.UniqueConstraint('address_id', name='uq_validated_addresses_address_id'),
    )
    op.create_index('ix_validated_addresses_zone', 'validated_addresses', ['zone_id'])
    op.create_index('ix_validated_addresses_coverage', 'validated_addresses', ['in_coverage'])


def downgrade() -> None:
    op.drop_table('validated_addresses')
    op.drop_table('zone_date_exceptions')
    op.drop_table('zone_weekly_schedules')
    op.drop_table('zone_cost_tiers')
    op.drop_table('zone_districts')
    op.drop_table('districts')
    op.drop_table('delivery_zones')
