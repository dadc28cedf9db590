"""Command-line sync runner.

Runs one incremental sync of a configured source tree into the document store, the same
way the admin sync routes do, and prints a one-line summary.

Sources:
- pdfs: the local directory settings.PDFS_DIR (URLs from settings.PDF_BASE_URL)
- google-drive: the folders in settings.GOOGLE_DRIVE_FOLDER_IDS using the token at
  settings.GOOGLE_OAUTH_TOKEN

Usage:
  python -m archivist.ingestion.run_sync --source pdfs
  python -m archivist.ingestion.run_sync --source google-drive --log-level DEBUG

Configuration:
- Database: archivist.config.settings.DATABASE_URL
- Embeddings: archivist.config.settings.EMBEDDINGS_PROVIDER and its key/model
- Chunk params: archivist.config.settings.CHUNK_SIZE_CHARS, CHUNK_OVERLAP_CHARS
"""
import argparse
import asyncio
import logging

from archivist.config import settings
from archivist.embedding import EmbeddingOrchestrator, get_embedding_provider
from archivist.sources import GoogleDriveTree, LocalPdfTree, SourceTree
from archivist.store import DocumentStore
from archivist.sync import SyncEngine, SyncReport

logger = logging.getLogger(__name__)

SOURCES = ("pdfs", "google-drive")


def build_tree(source: str) -> SourceTree:
    if source == "pdfs":
        return LocalPdfTree(settings.PDFS_DIR, settings.PDF_BASE_URL)
    return GoogleDriveTree(settings.drive_folder_ids, settings.GOOGLE_OAUTH_TOKEN)


async def run(source: str) -> SyncReport:
    """Open the store, run one sync of `source`, and close the store again."""
    store = DocumentStore.from_url(settings.DATABASE_URL)
    try:
        store.init()
        engine = SyncEngine(
            store,
            EmbeddingOrchestrator(get_embedding_provider(settings)),
            chunk_size=settings.CHUNK_SIZE_CHARS,
            chunk_overlap=settings.CHUNK_OVERLAP_CHARS,
            mime_allowlist=settings.mime_whitelist,
        )
        return await engine.run(build_tree(source))
    finally:
        store.close()


def main():
    parser = argparse.ArgumentParser(description="Incrementally sync a source tree into the index.")
    parser.add_argument("--source", required=True, choices=SOURCES, help="Source tree to sync")
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: LOG_LEVEL setting)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger.info("Starting %s sync", args.source)

    try:
        report = asyncio.run(run(args.source))
    except Exception:
        logger.exception("Sync of %s failed", args.source)
        raise
    print(
        f"[SYNC-{args.source.upper()}] processed={report.files_processed} skipped={report.files_skipped} "
        f"empty={report.files_empty} failed={report.files_failed} stale={len(report.stale_ids)}"
    )


if __name__ == "__main__":
    main()
