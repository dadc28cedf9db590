"""Incremental synchronization of a source tree into the document store.

For each candidate file, in lister order and one file at a time:
- Filter: files whose type cannot yield text are counted as empty without being fetched.
- Diff: compare the stored fingerprint (checksum, else modified time) with the fresh one
  and skip unchanged files.
- Process: fetch bytes, extract text, abandon empty content, chunk (one chunk per page when
  the extractor returned pages), embed all chunks in one orchestrator call, then write the
  document row and its full chunk set in a single transaction.

A failure in one file is logged and recorded in the report; the run carries on.
Documents whose file has disappeared are reported as stale but never deleted here.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from archivist.chunking import chunk_text, hard_split
from archivist.embedding import EmbeddingOrchestrator
from archivist.extraction import Extraction, extract_text, supported_mime
from archivist.obs import span
from archivist.sources import SourceFile, SourceTree
from archivist.store import DocumentRecord, DocumentStore
from archivist.utils import normalize_whitespace, parse_meta_from_name, stable_doc_id

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one sync run."""
    files_processed: int = 0
    files_skipped: int = 0
    files_empty: int = 0
    files_failed: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    stale_ids: List[str] = field(default_factory=list)


def is_unchanged(existing: Optional[DocumentRecord], file: SourceFile) -> bool:
    """True when the stored fingerprint matches the file's current one.

    The checksum is preferred; the modification time is used only when the source offers
    no checksum.
    """
    if existing is None:
        return False
    if file.checksum:
        return existing.checksum == file.checksum
    return bool(file.modified_time) and existing.modified_time == file.modified_time


def build_chunks(extraction: Extraction, max_chars: int, overlap_chars: int) -> List[Tuple[str, Optional[int]]]:
    """Turn an extraction into (text, page) pairs.

    With per-page text each page becomes one chunk (pages longer than max_chars are
    hard-split, every slice keeping the page number); otherwise paragraphs are packed.
    """
    if extraction.pages:
        out: List[Tuple[str, Optional[int]]] = []
        for number, raw in enumerate(extraction.pages, start=1):
            text = normalize_whitespace(raw)
            if not text:
                continue
            for piece in hard_split(text, max_chars):
                out.append((piece, number))
        return out
    return [(c, None) for c in chunk_text(extraction.full_text, max_chars, overlap_chars)]


class SyncEngine:
    """Drives chunker, embedding orchestrator and store for changed files only.

    Args:
        store: Document store handle.
        embedder: Embedding orchestrator used for every file of the run.
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Characters carried between packed chunks.
        mime_allowlist: Optional allow-list of mime types; empty means everything.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedder: EmbeddingOrchestrator,
        chunk_size: int,
        chunk_overlap: int,
        mime_allowlist: Optional[Sequence[str]] = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.mime_allowlist = list(mime_allowlist or [])

    async def run(self, tree: SourceTree) -> SyncReport:
        """Synchronize every eligible file of `tree` into the store."""
        t0 = time.time()
        report = SyncReport()
        with span("sync", {"source": tree.tag}):
            candidates = await tree.list_candidates()
            if self.mime_allowlist:
                candidates = [f for f in candidates if f.mime_type in self.mime_allowlist]
            logger.info("Sync %s: %d candidate files", tree.tag, len(candidates))

            for file in candidates:
                if not supported_mime(file.mime_type):
                    logger.debug("[SKIP-UNSUPPORTED] %s (%s)", file.name, file.mime_type)
                    report.files_empty += 1
                    continue
                try:
                    existing = await asyncio.to_thread(self.store.get_document, file.id)
                    if is_unchanged(existing, file):
                        report.files_skipped += 1
                        continue
                    n = await self._process(tree, file)
                except Exception as e:
                    logger.exception("Sync failed for %s (%s)", file.name, file.id)
                    report.files_failed += 1
                    report.failures.append({"id": file.id, "name": file.name, "error": str(e)})
                    continue
                if n == 0:
                    report.files_empty += 1
                    continue
                report.files_processed += 1
                report.details.append({"id": file.id, "name": file.name, "chunks": n})
                logger.info("[SYNC] %s -> %d chunks", file.name, n)

            seen = {f.id for f in candidates}
            stored = await asyncio.to_thread(self.store.list_documents, tree.tag)
            report.stale_ids = [d.id for d in stored if d.id not in seen]
            if report.stale_ids:
                logger.warning("%d stored %s documents no longer present in the source", len(report.stale_ids), tree.tag)

        logger.info(
            "[DONE] %s: processed=%d skipped=%d empty=%d failed=%d in %.1fs",
            tree.tag,
            report.files_processed,
            report.files_skipped,
            report.files_empty,
            report.files_failed,
            time.time() - t0,
        )
        return report

    async def _process(self, tree: SourceTree, file: SourceFile) -> int:
        """Re-ingest one file. Returns the number of chunks written (0 when abandoned)."""
        data, mime_type = await tree.fetch(file)
        extraction = await asyncio.to_thread(extract_text, data, mime_type)
        if not extraction.full_text.strip():
            logger.info("[SKIP-EMPTY] %s: no extractable text", file.name)
            return 0

        pieces = build_chunks(extraction, self.chunk_size, self.chunk_overlap)
        if not pieces:
            return 0

        vectors = await self.embedder.embed([text for text, _ in pieces])

        meta = parse_meta_from_name(file.name)
        values = {
            "id": file.id,
            "source": tree.tag,
            "title": meta.title,
            "author": meta.author,
            "issue": meta.issue,
            "page": meta.page,
            "url": file.url,
            "mime_type": file.mime_type,
            "modified_time": file.modified_time,
            "checksum": file.checksum,
        }
        rows = [
            {
                "id": stable_doc_id(f"{file.id}:{i}"),
                "chunk_index": i,
                "text": text,
                "embedding": vec,
                "page": page,
            }
            for i, ((text, page), vec) in enumerate(zip(pieces, vectors))
        ]
        await asyncio.to_thread(self.store.replace_document, values, rows)
        return len(rows)
