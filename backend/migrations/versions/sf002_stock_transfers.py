"""stock transfers between branches

Revision ID: sf002
Revises: sf001
Create Date: 2026-10-19 00:00:00.000000

Adds:
- stock_transfers: DRAFT -> IN_TRANSIT -> RECEIVED movements between two
  branches of one organization (or CANCELLED)
- stock_transfer_lines: product and quantity sent, quantity received
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'sf002'
down_revision = 'sf001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'stock_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('from_branch_id', sa.Integer(), nullable=False),
        sa.Column('to_branch_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['from_branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['to_branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('from_branch_id <> to_branch_id', name='ck_stock_transfers_distinct_branches'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_transfers_org_id', 'stock_transfers', ['org_id'])
    op.create_index('ix_stock_transfers_from_branch_id', 'stock_transfers', ['from_branch_id'])
    op.create_index('ix_stock_transfers_to_branch_id', 'stock_transfers', ['to_branch_id'])
    op.create_index('ix_stock_transfers_status', 'stock_transfers', ['status'])
    op.create_index('ix_stock_transfers_org_status', 'stock_transfers', ['org_id', 'status'])

    op.create_table(
        'stock_transfer_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transfer_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('received_quantity', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['transfer_id'], ['stock_transfers.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_transfer_lines_transfer_id', 'stock_transfer_lines', ['transfer_id'])


def downgrade():
    op.drop_table('stock_transfer_lines')
    op.drop_table('stock_transfers')
