"""Archivist: incremental ingestion and cited question answering over a document archive.

Submodules overview:
- main: FastAPI application, SSE /ask endpoint, admin sync and document routes.
- config: Application settings and environment variable loading.
- errors: Exception hierarchy (configuration, provider, empty index).
- db: Engine/session helpers and schema initialization.
- models: ORM models for documents and their chunks.
- store: DocumentStore, the owned handle for all reads and transactional writes.
- schemas: Pydantic request/response models for API contracts.
- chunking: Paragraph-aware chunking with overlap and hard splits.
- extraction: Text extraction from PDF and plain-text bytes.
- embedding: Embedding providers and the batching/retrying orchestrator.
- sources: Source trees (local PDF directory, Google Drive folders).
- sync: Incremental sync engine with checksum / modified-time diffing.
- retrieval: Cosine ranking, short-query keyword gate, one chunk per document.
- generation: Context formatting, streaming generation providers, citation split.
- query: The question-answering event stream.
- ingestion: Command-line sync runner and PDF diagnostics.
- obs: Observability utilities (tracing/spans).
- utils: Identifiers, checksums, file-name metadata and URLs.
"""
