"""webhook tables - outbound deliveries and inbound records

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

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
    # Create delivery_records table (status as VARCHAR holding the enum name)
    op.create_table(
        'delivery_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('event', sa.String(100), nullable=False, index=True),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('payload_json', sa.Text(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING', index=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('last_status_code', sa.Integer(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )

    # Create inbound_webhook_records table (dedupe_key unique)
    op.create_table(
        'inbound_webhook_records',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('dedupe_key', sa.String(255), nullable=False, unique=True),
        sa.Column('kind', sa.String(50), nullable=False, index=True),
        sa.Column('event_type', sa.String(50), nullable=False, index=True),
        sa.Column('payload_json', sa.Text(), nullable=False),
        sa.Column('signature_valid', sa.Boolean(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='RECEIVED', index=True),
        sa.Column('validation_error', sa.Text(), nullable=True),
        sa.Column('source_ip', sa.String(64), nullable=True),
        sa.Column('receive_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_error', sa.Text(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('inbound_webhook_records')
    op.drop_table('delivery_records')
