"""Asset ledger and usage references

Revision ID: 001
Revises: 
Create Date: 2026-10-17 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create assets table
    op.create_table(
        'assets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('storage_key', sa.String(length=255), nullable=False),
        sa.Column('delivery_url', sa.String(length=1000), nullable=False),
        sa.Column('content_hash', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='temp'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
        sa.Column('origin_source', sa.String(length=50), nullable=False),
        sa.Column('origin_context', sa.String(length=255), nullable=False),
        sa.Column('intended_use', sa.String(length=50), nullable=True),
        sa.Column('uploaded_by', sa.String(length=255), nullable=False),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('height', sa.Integer(), nullable=True),
        sa.Column('format', sa.String(length=20), nullable=True),
        sa.Column('size_bytes', sa.Integer(), nullable=True),
        sa.Column('resource_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('storage_key'),
        sa.UniqueConstraint('content_hash'),
    )
    op.create_index(op.f('ix_assets_id'), 'assets', ['id'], unique=False)
    # Reclamation sweeps and gallery filtering
    op.create_index('ix_assets_status_expires_at', 'assets', ['status', 'expires_at'], unique=False)
    op.create_index('ix_assets_status_archived_at', 'assets', ['status', 'archived_at'], unique=False)
    op.create_index('ix_assets_status_origin_source', 'assets', ['status', 'origin_source'], unique=False)

    # Create asset_usages table
    op.create_table(
        'asset_usages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('asset_id', sa.Integer(), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('asset_id', 'entity_type', 'entity_id', name='uq_asset_usages_owner'),
    )
    op.create_index(op.f('ix_asset_usages_id'), 'asset_usages', ['id'], unique=False)
    op.create_index(op.f('ix_asset_usages_asset_id'), 'asset_usages', ['asset_id'], unique=False)
    # Entity release looks up every asset an owner references
    op.create_index('ix_asset_usages_owner', 'asset_usages', ['entity_type', 'entity_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_asset_usages_owner', table_name='asset_usages')
    op.drop_index(op.f('ix_asset_usages_asset_id'), table_name='asset_usages')
    op.drop_index(op.f('ix_asset_usages_id'), table_name='asset_usages')
    op.drop_table('asset_usages')
    op.drop_index('ix_assets_status_origin_source', table_name='assets')
    op.drop_index('ix_assets_status_archived_at', table_name='assets')
    op.drop_index('ix_assets_status_expires_at', table_name='assets')
    op.drop_index(op.f('ix_assets_id'), table_name='assets')
    op.drop_table('assets')
