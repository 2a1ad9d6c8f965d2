"""Document table for segmentation, pricing and installment records

Revision ID: 001_documents_table
Revises: 
Create Date: 2026-10-19

One JSONB document per (collection, doc_id):
- customer_segments: RFM segmentation profiles keyed by user id
- dynamic_prices: pricing records keyed by product id
- installment_plans: installment and BNPL plans keyed by plan id
- credit_applications: BNPL credit applications keyed by application id
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_documents_table'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'documents',
        sa.Column('collection', sa.String(64), nullable=False),
        sa.Column('doc_id', sa.String(128), nullable=False),
        sa.Column('body', postgresql.JSONB, nullable=False),
        sa.Column('created_at', sa.DateTime, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('collection', 'doc_id'),
    )

    # Segment lookups for distribution and at-risk queries
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_documents_primary_segment
        ON documents ((body->>'primarySegment'))
        WHERE collection = 'customer_segments'
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_documents_user_id
        ON documents ((body->>'userId'))
        WHERE collection IN ('installment_plans', 'credit_applications')
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS idx_documents_user_id")
    op.execute("DROP INDEX IF EXISTS idx_documents_primary_segment")
    op.drop_table('documents')
