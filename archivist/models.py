"""Database ORM models.

Defines the two persistent entities of the archive index:
- Document: one source file's record (display metadata + change-detection fields).
- Chunk: one retrievable passage of a Document with its pgvector embedding.

Chunks are owned by their Document: the foreign key cascades on delete and the ORM
relationship leaves that to the database, so a chunk never outlives its document.
"""
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from archivist.db import Base


class Document(Base):
    """Source document identified by relative path hash or remote file id.

    Indexes:
        - idx_documents_modified: lookups by modification time
        - idx_documents_checksum: lookups by content checksum
    """
    __tablename__ = "documents"

    id = Column(String(128), primary_key=True)
    source = Column(String(32), nullable=False)

    # Display metadata (parsed from the file name)
    title = Column(String(512), nullable=True)
    author = Column(String(256), nullable=True)
    issue = Column(String(32), nullable=True)
    page = Column(String(32), nullable=True)
    url = Column(String(2048), nullable=True)

    # Change detection
    mime_type = Column(String(128), nullable=True)
    modified_time = Column(String(64), nullable=True)
    checksum = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    chunks = relationship(
        "Chunk",
        back_populates="document",
        cascade="all",
        passive_deletes=True,
        order_by="Chunk.chunk_index",
    )

    __table_args__ = (
        Index("idx_documents_modified", "modified_time"),
        Index("idx_documents_checksum", "checksum"),
    )


class Chunk(Base):
    """Vector-embedded passage of a document.

    The embedding dimension is fixed by the embedding provider/model; the column is declared
    without a dimension so that switching models only requires a re-sync.
    """
    __tablename__ = "chunks"

    id = Column(String(64), primary_key=True)
    doc_id = Column(String(128), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    chunk_index = Column(Integer, nullable=False)  # order within a doc
    text = Column(Text, nullable=False)
    embedding = Column(Vector(), nullable=False)
    page = Column(Integer, nullable=True)  # 1-based, page-aligned extraction only

    document = relationship("Document", back_populates="chunks")

    __table_args__ = (
        Index("idx_chunks_doc", "doc_id"),
        UniqueConstraint("doc_id", "chunk_index", name="uq_chunks_doc_index"),
    )
