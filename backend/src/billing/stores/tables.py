"""Billing tables (SQLAlchemy Core)."""

from sqlalchemy import Column, DateTime, Index, Integer, MetaData, String, Table, Text, func

metadata = MetaData()

subscriptions = Table(
    'subscriptions',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(64), nullable=False, index=True),
    Column('plan_name', String(32), nullable=False),
    Column('status', String(32), nullable=False, default='pending'),
    Column('provider_reference_id', String(255), nullable=True, index=True),
    Column('provider_session_id', String(255), nullable=True, index=True),
    Column('period_ends_at', DateTime(timezone=True), nullable=True),
    Column('credits_granted_at', DateTime(timezone=True), nullable=True),
    Column('created_at', DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column(
        'updated_at',
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    ),
    Index('ix_subscriptions_status_created_at', 'status', 'created_at'),
)

# Owned by the identity layer, billing reads/writes plan and generation_balance only
user_profiles = Table(
    'user_profiles',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('plan', String(32), nullable=False, default='free'),
    Column('generation_balance', Integer, nullable=True),
)

# Runtime overrides for billing configuration
app_config = Table(
    'app_config',
    metadata,
    Column('key', String(128), primary_key=True),
    Column('value', Text, nullable=True),
)
