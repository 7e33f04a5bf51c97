"""Initial schema with the shared documents table

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create documents table for timeSlots and reservations."""
    op.create_table(
        'documents',
        sa.Column('collection', sa.String(length=64), nullable=False),
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('data', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unique_key', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('collection', 'id'),
        sa.UniqueConstraint('collection', 'unique_key', name='uq_documents_collection_unique_key'),
    )
    op.create_index('ix_documents_collection_created', 'documents', ['collection', 'created_at'])


def downgrade() -> None:
    """Drop documents table."""
    op.drop_index('ix_documents_collection_created', table_name='documents')
    op.drop_table('documents')
