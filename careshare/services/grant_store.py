"""Grant document storage.

A small key/value-with-query interface over named collections of JSON
documents. Each call is atomic for a single document; nothing spans
documents, so multi-document mutations are sequenced by the caller
(see ``careshare.services.saga``).
"""

import abc
import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from careshare.logging_config import get_logger
from careshare.models.grant_document import GrantDocument
from careshare.services.errors import StorageError

logger = get_logger(__name__)


@dataclass
class Document:
    """A stored document and its id within its collection."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)


def _sort_documents(
    documents: list[Document], order_by: str | None, descending: bool
) -> list[Document]:
    if order_by is None:
        return documents
    # Documents missing the field sort last in ascending order
    present = [d for d in documents if d.data.get(order_by) is not None]
    missing = [d for d in documents if d.data.get(order_by) is None]
    present.sort(key=lambda d: d.data[order_by], reverse=descending)
    return present + missing


class GrantStore(abc.ABC):
    """Storage contract used by the grant services."""

    @abc.abstractmethod
    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Fetch one document, or None if it does not exist."""

    @abc.abstractmethod
    async def put(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or replace a document; with merge=True, update only given fields."""

    @abc.abstractmethod
    async def query(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        """Return documents whose fields equal every filter value."""

    @abc.abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""


class InMemoryGrantStore(GrantStore):
    """Process-local store for development and tests.

    Documents are deep-copied on the way in and out so callers can never
    mutate stored state through a returned reference.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    async def get(self, collection: str, doc_id: str) -> Document | None:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data))

    async def put(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        documents = self._collections.setdefault(collection, {})
        incoming = copy.deepcopy(dict(data))
        if merge and doc_id in documents:
            documents[doc_id].update(incoming)
        else:
            documents[doc_id] = incoming

    async def query(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        filters = filters or {}
        matches = [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection, {}).items()
            if all(data.get(name) == value for name, value in filters.items())
        ]
        return _sort_documents(matches, order_by, descending)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._collections.get(collection, {}).pop(doc_id, None)


class SqlGrantStore(GrantStore):
    """Store backed by the ``grant_documents`` table.

    Every call runs in its own session and commits before returning.
    Equality filters compile to JSON path comparisons, so filter values
    must be strings.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def get(self, collection: str, doc_id: str) -> Document | None:
        try:
            async with self._session_maker() as session:
                row = await session.get(GrantDocument, (collection, doc_id))
                if row is None:
                    return None
                return Document(id=row.doc_id, data=dict(row.data))
        except SQLAlchemyError as exc:
            logger.exception(
                "Grant store read failed", collection=collection, doc_id=doc_id
            )
            raise StorageError("read failed") from exc

    async def put(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool = False,
    ) -> None:
        try:
            await self._write(collection, doc_id, data, merge)
        except IntegrityError:
            # A concurrent writer inserted the same key first; apply ours on top
            logger.warning(
                "Grant store insert raced, retrying as update",
                collection=collection,
                doc_id=doc_id,
            )
            try:
                await self._write(collection, doc_id, data, merge)
            except SQLAlchemyError as exc:
                raise StorageError("write failed") from exc
        except SQLAlchemyError as exc:
            logger.exception(
                "Grant store write failed", collection=collection, doc_id=doc_id
            )
            raise StorageError("write failed") from exc

    async def _write(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        merge: bool,
    ) -> None:
        async with self._session_maker() as session:
            row = await session.get(GrantDocument, (collection, doc_id))
            if row is None:
                session.add(
                    GrantDocument(collection=collection, doc_id=doc_id, data=dict(data))
                )
            elif merge:
                # JSON columns do not track in-place mutation; assign a new dict
                row.data = {**row.data, **data}
            else:
                row.data = dict(data)
            await session.commit()

    async def query(
        self,
        collection: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        stmt = select(GrantDocument).where(GrantDocument.collection == collection)
        for name, value in (filters or {}).items():
            stmt = stmt.where(GrantDocument.data[name].as_string() == value)

        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                rows = list(result.scalars().all())
        except SQLAlchemyError as exc:
            logger.exception("Grant store query failed", collection=collection)
            raise StorageError("query failed") from exc

        documents = [Document(id=row.doc_id, data=dict(row.data)) for row in rows]
        return _sort_documents(documents, order_by, descending)

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            async with self._session_maker() as session:
                row = await session.get(GrantDocument, (collection, doc_id))
                if row is not None:
                    await session.delete(row)
                    await session.commit()
        except SQLAlchemyError as exc:
            logger.exception(
                "Grant store delete failed", collection=collection, doc_id=doc_id
            )
            raise StorageError("delete failed") from exc
