"""Create assistant_threads table

Revision ID: 001
Revises: 
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # One conversation thread per application user
    op.create_table(
        'assistant_threads',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('thread_id', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_assistant_threads_thread_id', 'assistant_threads', ['thread_id'])


def downgrade() -> None:
    op.drop_index('idx_assistant_threads_thread_id', table_name='assistant_threads')
    op.drop_table('assistant_threads')
