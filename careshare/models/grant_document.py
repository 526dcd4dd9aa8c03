"""Grant document storage model.

One row per stored document. Rows are addressed by (collection, doc_id),
mirroring the document-store layout the grant records were designed for:
share records live in ``shares`` keyed by ``{ownerId}_{caregiverUserId}``,
invitations in ``shareInvites`` keyed by their token.
"""

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from careshare.models.base import Base, TimestampMixin

DocumentJSON = JSON().with_variant(JSONB(), "postgresql")


class GrantDocument(Base, TimestampMixin):
    """A JSON document in a named collection."""

    __tablename__ = "grant_documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)

    doc_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    data: Mapped[dict[str, Any]] = mapped_column(
        DocumentJSON,
        nullable=False,
        default=dict,
    )

    def __repr__(self) -> str:
        return f"<GrantDocument(collection={self.collection}, doc_id={self.doc_id})>"
