"""create hosts, decisions, alerts and users tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'hosts',
        sa.Column('ip', sa.String(length=45), nullable=False),
        sa.Column('scope', sa.String(length=20), nullable=False),
        sa.Column('first_seen', sa.DateTime(), nullable=False),
        sa.Column('last_seen', sa.DateTime(), nullable=False),
        sa.Column('total_bans', sa.Integer(), nullable=False),
        sa.Column('country', sa.String(length=2), nullable=True),
        sa.Column('as_number', sa.String(length=20), nullable=True),
        sa.Column('as_name', sa.String(length=255), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('ip')
    )
    op.create_index('ix_hosts_last_seen', 'hosts', ['last_seen'], unique=False)

    op.create_table(
        'decisions',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('host_ip', sa.String(length=45), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('origin', sa.String(length=50), nullable=False),
        sa.Column('scope', sa.String(length=20), nullable=False),
        sa.Column('scenario', sa.String(length=255), nullable=False),
        sa.Column('duration', sa.String(length=50), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['host_ip'], ['hosts.ip']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_decisions_host_ip', 'decisions', ['host_ip'], unique=False)
    op.create_index('ix_decisions_active_created_at', 'decisions', ['active', 'created_at'], unique=False)

    op.create_table(
        'alerts',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('scenario', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('host_ip', sa.String(length=45), nullable=False),
        sa.Column('entries', sa.JSON(), nullable=False),
        sa.Column('entry_type', sa.String(length=20), nullable=False),
        sa.Column('events', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_alerts_host_ip', 'alerts', ['host_ip'], unique=False)

    op.create_table(
        'decision_alerts',
        sa.Column('decision_id', sa.Integer(), nullable=False),
        sa.Column('alert_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['decision_id'], ['decisions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['alert_id'], ['alerts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('decision_id', 'alert_id')
    )

    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
    op.drop_table('decision_alerts')
    op.drop_index('ix_alerts_host_ip', table_name='alerts')
    op.drop_table('alerts')
    op.drop_index('ix_decisions_active_created_at', table_name='decisions')
    op.drop_index('ix_decisions_host_ip', table_name='decisions')
    op.drop_table('decisions')
    op.drop_index('ix_hosts_last_seen', table_name='hosts')
    op.drop_table('hosts')
