"""unit ledger schema

Revision ID: fa01b2c3d4e5
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the filter tracking schema from scratch:
- clients: client directory (name_key unique)
- unit_records: global ledger, one row per (reference, serial)
- client_ledger_entries: per-client ledgers, refreshed from unit_records
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'fa01b2c3d4e5'
down_revision = None
branch_labels = None
depends_on = None


def _unit_columns():
    """Columns shared by the global ledger and the per-client copies."""
    return [
        sa.Column('reference', sa.String(length=64), nullable=False),
        sa.Column('serial', sa.String(length=64), nullable=False),
        sa.Column('state', sa.String(length=16), nullable=False, server_default='STORED'),
        sa.Column('client', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('client_key', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('actor_plant', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('actor_dispatch', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('actor_install', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('actor_uninstall', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('plate', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('installer_name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('odometer_install', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('odometer_uninstall', sa.String(length=32), nullable=False, server_default=''),
        sa.Column('date_stored', sa.String(length=10), nullable=False, server_default=''),
        sa.Column('time_stored', sa.String(length=8), nullable=False, server_default=''),
        sa.Column('date_dispatched', sa.String(length=10), nullable=False, server_default=''),
        sa.Column('time_dispatched', sa.String(length=8), nullable=False, server_default=''),
        sa.Column('date_installed', sa.String(length=10), nullable=False, server_default=''),
        sa.Column('time_installed', sa.String(length=8), nullable=False, server_default=''),
        sa.Column('date_uninstalled', sa.String(length=10), nullable=False, server_default=''),
        sa.Column('time_uninstalled', sa.String(length=8), nullable=False, server_default=''),
    ]


def upgrade():
    # ============================================================================
    # clients: directory
    # ============================================================================
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('name_key', sa.String(length=120), nullable=False),
        sa.Column('registered_on', sa.String(length=10), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name_key', name='uq_clients_name_key'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # unit_records: global ledger (source of truth)
    # ============================================================================
    op.create_table(
        'unit_records',
        sa.Column('id', sa.Integer(), nullable=False),
        *_unit_columns(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reference', 'serial', name='uq_unit_records_reference_serial'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_unit_records_state', 'unit_records', ['state'])
    op.create_index('ix_unit_records_client_key', 'unit_records', ['client_key'])
    op.create_index('ix_unit_records_client_state', 'unit_records', ['client_key', 'state'])

    # ============================================================================
    # client_ledger_entries: per-client ledgers
    # ============================================================================
    op.create_table(
        'client_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ledger_key', sa.String(length=120), nullable=False),
        sa.Column('entry_no', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        *_unit_columns(),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['unit_id'], ['unit_records.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ledger_key', 'unit_id', name='uq_client_ledger_ledger_unit'),
        sa.UniqueConstraint('ledger_key', 'entry_no', name='uq_client_ledger_ledger_entry_no'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_client_ledger_entries_ledger_key', 'client_ledger_entries', ['ledger_key'])
    op.create_index('ix_client_ledger_entries_unit_id', 'client_ledger_entries', ['unit_id'])
    op.create_index('ix_client_ledger_entries_state', 'client_ledger_entries', ['state'])
    op.create_index('ix_client_ledger_entries_client_key', 'client_ledger_entries', ['client_key'])


def downgrade():
    op.drop_table('client_ledger_entries')
    op.drop_table('unit_records')
    op.drop_table('clients')
