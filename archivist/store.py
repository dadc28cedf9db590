"""Document store: the single shared mutable resource of the index.

DocumentStore owns an engine and session factory and exposes the only mutations the
pipelines need: upsert a document and replace its chunk set. Each mutation is one
transaction; replace_document runs both in the same transaction so a document's
fingerprint is never committed without the chunks derived from that content.

Reads (get_all_chunks) are a single join-style SELECT, i.e. a snapshot. Readers see either
the fully-old or the fully-new chunk set of a document, never a mix or an empty gap.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine

from archivist.db import init_db, make_engine, make_session_factory, session_scope
from archivist.models import Chunk, Document

logger = logging.getLogger(__name__)

DOCUMENT_FIELDS = (
    "source",
    "title",
    "author",
    "issue",
    "page",
    "url",
    "mime_type",
    "modified_time",
    "checksum",
)


@dataclass
class DocumentRecord:
    """Detached, read-only view of a Document row."""
    id: str
    source: str
    title: Optional[str] = None
    author: Optional[str] = None
    issue: Optional[str] = None
    page: Optional[str] = None
    url: Optional[str] = None
    mime_type: Optional[str] = None
    modified_time: Optional[str] = None
    checksum: Optional[str] = None


@dataclass
class DocumentMeta:
    """Parent-document metadata attached to every retrieved chunk."""
    title: Optional[str] = None
    author: Optional[str] = None
    issue: Optional[str] = None
    page: Optional[str] = None
    url: Optional[str] = None
    source: Optional[str] = None


@dataclass
class RetrievedChunk:
    """A chunk joined with its owning document's metadata."""
    id: str
    doc_id: str
    chunk_index: int
    text: str
    embedding: Sequence[float]
    page: Optional[int] = None
    meta: DocumentMeta = field(default_factory=DocumentMeta)

    @property
    def citation_page(self) -> Optional[str]:
        """Page shown in citations: the chunk's own page, else the one parsed from the file name."""
        if self.page is not None:
            return str(self.page)
        return self.meta.page


def _to_record(doc: Document) -> DocumentRecord:
    return DocumentRecord(id=doc.id, **{name: getattr(doc, name) for name in DOCUMENT_FIELDS})


class DocumentStore:
    """Explicitly owned storage handle for documents and their chunks.

    Args:
        engine: SQLAlchemy engine; the store takes ownership and disposes it on close().
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._factory = make_session_factory(engine)

    @classmethod
    def from_url(cls, url: str) -> "DocumentStore":
        return cls(make_engine(url))

    def init(self) -> None:
        init_db(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    # Reads

    def get_document(self, doc_id: str) -> Optional[DocumentRecord]:
        with session_scope(self._factory) as session:
            doc = session.get(Document, doc_id)
            return _to_record(doc) if doc is not None else None

    def list_documents(self, source: Optional[str] = None) -> List[DocumentRecord]:
        stmt = select(Document).order_by(Document.id)
        if source is not None:
            stmt = stmt.where(Document.source == source)
        with session_scope(self._factory) as session:
            return [_to_record(d) for d in session.scalars(stmt).all()]

    def documents_modified_since(self, timestamp: str) -> List[DocumentRecord]:
        """Documents whose stored modified_time (ISO-8601) is later than timestamp."""
        stmt = (
            select(Document)
            .where(Document.modified_time.is_not(None), Document.modified_time > timestamp)
            .order_by(Document.modified_time)
        )
        with session_scope(self._factory) as session:
            return [_to_record(d) for d in session.scalars(stmt).all()]

    def count_chunks(self) -> int:
        with session_scope(self._factory) as session:
            return int(session.scalar(select(func.count()).select_from(Chunk)) or 0)

    def get_all_chunks(self) -> List[RetrievedChunk]:
        """Return every chunk with its parent metadata, ordered by (doc_id, chunk_index)."""
        stmt = (
            select(Chunk, Document)
            .join(Document, Chunk.doc_id == Document.id)
            .order_by(Chunk.doc_id, Chunk.chunk_index)
        )
        out: List[RetrievedChunk] = []
        with session_scope(self._factory) as session:
            for chunk, doc in session.execute(stmt).all():
                out.append(
                    RetrievedChunk(
                        id=chunk.id,
                        doc_id=chunk.doc_id,
                        chunk_index=chunk.chunk_index,
                        text=chunk.text,
                        embedding=chunk.embedding,
                        page=chunk.page,
                        meta=DocumentMeta(
                            title=doc.title,
                            author=doc.author,
                            issue=doc.issue,
                            page=doc.page,
                            url=doc.url,
                            source=doc.source,
                        ),
                    )
                )
        return out

    # Writes

    def upsert_document(self, values: Mapping[str, Any]) -> None:
        with session_scope(self._factory) as session:
            self._upsert(session, values)

    def replace_chunks(self, doc_id: str, rows: Sequence[Mapping[str, Any]]) -> None:
        with session_scope(self._factory) as session:
            self._replace_chunks(session, doc_id, rows)

    def replace_document(self, values: Mapping[str, Any], rows: Sequence[Mapping[str, Any]]) -> None:
        """Upsert the document and replace its full chunk set in a single transaction.

        Args:
            values: Document fields; must include "id" and "source".
            rows: Chunk rows with keys id, chunk_index, text, embedding and optional page.
        """
        with session_scope(self._factory) as session:
            self._upsert(session, values)
            self._replace_chunks(session, values["id"], rows)
        logger.debug("Replaced document %s with %d chunks", values["id"], len(rows))

    def delete_document(self, doc_id: str) -> bool:
        """Remove a document and, by cascade, its chunks. Returns False if it did not exist."""
        with session_scope(self._factory) as session:
            doc = session.get(Document, doc_id)
            if doc is None:
                return False
            session.delete(doc)
        logger.info("Deleted document %s", doc_id)
        return True

    @staticmethod
    def _upsert(session, values: Mapping[str, Any]) -> None:
        doc = session.get(Document, values["id"])
        if doc is None:
            doc = Document(id=values["id"])
            session.add(doc)
        for name in DOCUMENT_FIELDS:
            if name in values:
                setattr(doc, name, values[name])

    @staticmethod
    def _replace_chunks(session, doc_id: str, rows: Sequence[Mapping[str, Any]]) -> None:
        session.execute(delete(Chunk).where(Chunk.doc_id == doc_id))
        session.add_all(
            [
                Chunk(
                    id=r["id"],
                    doc_id=doc_id,
                    chunk_index=r["chunk_index"],
                    text=r["text"],
                    embedding=[float(x) for x in r["embedding"]],
                    page=r.get("page"),
                )
                for r in rows
            ]
        )
        session.flush()
