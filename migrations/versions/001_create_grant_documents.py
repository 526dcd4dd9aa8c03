"""Create grant_documents table.

Holds the ``shares``, ``shareInvites`` and ``userRoles`` collections as
JSON documents keyed by (collection, doc_id).

Revision ID: 001_grant_documents
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_grant_documents"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "grant_documents",
        sa.Column("collection", sa.String(64), nullable=False),
        sa.Column("doc_id", sa.String(255), nullable=False),
        sa.Column("data", postgresql.JSONB(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("collection", "doc_id"),
    )

    # Lookups by owner and by caregiver drive every listing
    op.create_index(
        "ix_grant_documents_owner_id",
        "grant_documents",
        ["collection", sa.text("(data ->> 'ownerId')")],
    )
    op.create_index(
        "ix_grant_documents_caregiver_user_id",
        "grant_documents",
        ["collection", sa.text("(data ->> 'caregiverUserId')")],
    )
    op.create_index(
        "ix_grant_documents_caregiver_email",
        "grant_documents",
        ["collection", sa.text("(data ->> 'caregiverEmail')")],
    )


def downgrade() -> None:
    op.drop_index("ix_grant_documents_caregiver_email", table_name="grant_documents")
    op.drop_index("ix_grant_documents_caregiver_user_id", table_name="grant_documents")
    op.drop_index("ix_grant_documents_owner_id", table_name="grant_documents")
    op.drop_table("grant_documents")
