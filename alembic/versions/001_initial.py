"""Initial migration

Revision ID: 001
Revises: 
Create Date: 2024-01-01 00:00:00.000000

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
    # Create calls table
    op.create_table(
        'calls',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('call_sid', sa.String(64), nullable=False),
        sa.Column('customer_number', sa.String(20)),
        sa.Column('direction', sa.String(20), default='inbound'),
        sa.Column('started_at', sa.DateTime()),
        sa.Column('ended_at', sa.DateTime()),
        sa.Column('duration_seconds', sa.Integer()),
        sa.Column('status', sa.String(20), default='ringing'),
        sa.Column('recording_url', sa.String(500)),
        sa.Column('recording_duration_seconds', sa.Integer()),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index('ix_calls_call_sid', 'calls', ['call_sid'], unique=True)

    # Create transcripts table
    op.create_table(
        'transcripts',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('call_id', sa.Uuid(as_uuid=True), sa.ForeignKey('calls.id'), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )
    op.create_index('ix_transcripts_call_id', 'transcripts', ['call_id'])
    op.create_index('ix_transcripts_created_at', 'transcripts', ['created_at'])

    # Create suggestions table
    op.create_table(
        'suggestions',
        sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column('call_id', sa.Uuid(as_uuid=True), sa.ForeignKey('calls.id'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), default=sa.func.now()),
    )
    op.create_index('ix_suggestions_call_id', 'suggestions', ['call_id'])
    op.create_index('ix_suggestions_created_at', 'suggestions', ['created_at'])


def downgrade() -> None:
    op.drop_table('suggestions')
    op.drop_table('transcripts')
    op.drop_table('calls')
