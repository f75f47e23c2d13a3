"""Verification records — shared store for the WhatsApp phone verification webhook.

Revision ID: 001_verification_records
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_verification_records"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "verification_records",
        sa.Column("phone", sa.String(32), primary_key=True),
        sa.Column("verified", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("timestamp", sa.BigInteger, nullable=False),
        sa.Column("whatsapp_username", sa.String(128), nullable=True),
        sa.Column("whatsapp_number", sa.String(32), nullable=True),
    )
    op.create_index(
        "ix_verification_records_timestamp",
        "verification_records",
        ["timestamp"],
    )


def downgrade() -> None:
    op.drop_index("ix_verification_records_timestamp", table_name="verification_records")
    op.drop_table("verification_records")
