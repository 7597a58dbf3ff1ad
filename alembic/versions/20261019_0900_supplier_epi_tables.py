"""Create supplier EPI tables

Revision ID: 20261019_0900_supplier_epi_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration adds the document tables of the supplier EPI:
- epi_config: weighted questionnaire (single 'default' row)
- supplier_evaluations: live evaluation per supplier, with a version counter
- epi_submissions: submission snapshots with their review and audit fields
- supplier_profiles: status flags written on submit, approval and rejection
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '20261019_0900_supplier_epi_tables'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create supplier EPI tables."""
    connection = op.get_bind()
    inspector = sa.inspect(connection)
    existing_tables = inspector.get_table_names()

    if 'epi_config' not in existing_tables:
        op.create_table(
            'epi_config',
            sa.Column('id', sa.String(64), nullable=False),
            sa.Column('document', sa.JSON(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id', name='pk_epi_config'),
        )

    if 'supplier_evaluations' not in existing_tables:
        op.create_table(
            'supplier_evaluations',
            sa.Column('supplier_id', sa.String(128), nullable=False),
            sa.Column('status', sa.String(32), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('document', sa.JSON(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('supplier_id', name='pk_supplier_evaluations'),
        )
        op.create_index('ix_supplier_evaluations_status', 'supplier_evaluations', ['status'])

    if 'epi_submissions' not in existing_tables:
        op.create_table(
            'epi_submissions',
            sa.Column('id', sa.String(64), nullable=False),
            sa.Column('supplier_id', sa.String(128), nullable=False),
            sa.Column('status', sa.String(32), nullable=False),
            sa.Column('schema_version', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('document', sa.JSON(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('id', name='pk_epi_submissions'),
        )
        op.create_index('ix_epi_submissions_supplier_id', 'epi_submissions', ['supplier_id'])
        op.create_index('ix_epi_submissions_status', 'epi_submissions', ['status'])

    if 'supplier_profiles' not in existing_tables:
        op.create_table(
            'supplier_profiles',
            sa.Column('supplier_id', sa.String(128), nullable=False),
            sa.Column('fields', sa.JSON(), nullable=False),
            *_timestamps(),
            sa.PrimaryKeyConstraint('supplier_id', name='pk_supplier_profiles'),
        )


def downgrade() -> None:
    """Drop supplier EPI tables."""
    op.drop_table('supplier_profiles')
    op.drop_index('ix_epi_submissions_status', table_name='epi_submissions')
    op.drop_index('ix_epi_submissions_supplier_id', table_name='epi_submissions')
    op.drop_table('epi_submissions')
    op.drop_index('ix_supplier_evaluations_status', table_name='supplier_evaluations')
    op.drop_table('supplier_evaluations')
    op.drop_table('epi_config')
