"""FastAPI application entrypoint and routes.

Exposes health, the streaming /ask endpoint, the admin sync routes and document removal.
Opens the document store at startup and closes it at shutdown. Providers are built lazily
on first use so a missing key surfaces as a 503 on the route that needs it.

/ask streams Server-Sent Events: one `data: <json>` frame per answer event and a
`: ping` comment whenever no event was produced for SSE_KEEPALIVE_SECONDS.
"""
import asyncio
import contextlib
import json
import logging
import os
import secrets
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from archivist.config import settings
from archivist.embedding import EmbeddingOrchestrator, get_embedding_provider
from archivist.errors import ConfigurationError, EmptyIndexError
from archivist.generation import GenerationProvider, get_generation_provider
from archivist.query import answer_events
from archivist.schemas import AskRequest, PdfSyncStatus, SyncResponse, SyncStatus
from archivist.sources import GoogleDriveTree, LocalPdfTree, SourceTree
from archivist.store import DocumentStore
from archivist.sync import SyncEngine, SyncReport

logger = logging.getLogger(__name__)

app = FastAPI(title="Archivist API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_credentials=True,
    allow_headers=["*"],
)

basic_auth = HTTPBasic(auto_error=False)


@app.on_event("startup")
def on_startup() -> None:
    """Open the document store and make sure the schema exists."""
    store = DocumentStore.from_url(settings.DATABASE_URL)
    store.init()
    app.state.store = store
    logger.info("Document store ready (%s)", store.engine.url.get_backend_name())


@app.on_event("shutdown")
def on_shutdown() -> None:
    store = getattr(app.state, "store", None)
    if store is not None:
        store.close()


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": exc.message})


@app.exception_handler(EmptyIndexError)
async def empty_index_handler(request: Request, exc: EmptyIndexError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": exc.message})


# Dependencies


def get_store(request: Request) -> DocumentStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise ConfigurationError("Document store is not initialized")
    return store


def get_embedder(request: Request) -> EmbeddingOrchestrator:
    state = request.app.state
    if getattr(state, "embedder", None) is None:
        state.embedder = EmbeddingOrchestrator(get_embedding_provider(settings))
    return state.embedder


def get_generator(request: Request) -> GenerationProvider:
    state = request.app.state
    if getattr(state, "generator", None) is None:
        state.generator = get_generation_provider(settings)
    return state.generator


def require_admin(credentials: Optional[HTTPBasicCredentials] = Depends(basic_auth)) -> str:
    """HTTP Basic guard for admin routes.

    Raises:
        HTTPException: 503 when no admin credentials are configured, 401 when the supplied
            credentials are missing or wrong.
    """
    if not settings.ADMIN_USER or not settings.ADMIN_PASS:
        raise HTTPException(status_code=503, detail="Sync disabled: set ADMIN_USER and ADMIN_PASS")
    ok = credentials is not None and (
        secrets.compare_digest(credentials.username.encode(), settings.ADMIN_USER.encode())
        & secrets.compare_digest(credentials.password.encode(), settings.ADMIN_PASS.encode())
    )
    if not ok:
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": 'Basic realm="Admin"'},
        )
    return credentials.username


# SSE


def sse_frame(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


async def sse_stream(events: AsyncIterator[Dict[str, Any]], keepalive_seconds: float) -> AsyncIterator[str]:
    """Frame answer events as SSE, interleaving keepalive comments while the producer is idle.

    When the response is closed early (client disconnect) the pending read is cancelled and
    the producer is closed, which in turn closes the provider stream.
    """

    async def _next() -> Dict[str, Any]:
        return await events.__anext__()

    pending: Optional[asyncio.Task] = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(_next())
            done, _ = await asyncio.wait({pending}, timeout=keepalive_seconds)
            if not done:
                yield ": ping\n\n"
                continue
            task, pending = pending, None
            try:
                event = task.result()
            except StopAsyncIteration:
                break
            yield sse_frame(event)
    finally:
        if pending is not None and not pending.done():
            pending.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pending
        await events.aclose()


# Routes


@app.get("/health")
def health():
    """Liveness probe endpoint.

    Returns:
        dict: {"status": "ok"} when the service is running.
    """
    return {"status": "ok"}


@app.post("/ask")
async def ask(
    req: AskRequest,
    store: DocumentStore = Depends(get_store),
    embedder: EmbeddingOrchestrator = Depends(get_embedder),
    generator: GenerationProvider = Depends(get_generator),
) -> StreamingResponse:
    """Answer a question over the archive as a Server-Sent Events stream.

    Workflow:
    - Reject over-long messages (413) and an empty index (400) before streaming
    - Embed the question, rank stored chunks, keep one passage per document
    - Stream generated text deltas, then the cited / also-considered sources

    Args:
        req: AskRequest payload.

    Returns:
        StreamingResponse: text/event-stream of answer events.
    """
    message = req.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is empty")
    if len(message) > settings.MAX_MESSAGE_CHARS:
        raise HTTPException(status_code=413, detail="Message too long")
    if await asyncio.to_thread(store.count_chunks) == 0:
        raise EmptyIndexError()

    events = answer_events(
        message,
        store,
        embedder,
        generator,
        top_k=settings.RETRIEVAL_TOP_K,
        short_query_top_k=settings.SHORT_QUERY_TOP_K,
    )
    return StreamingResponse(
        sse_stream(events, settings.SSE_KEEPALIVE_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


def _engine(store: DocumentStore, embedder: EmbeddingOrchestrator) -> SyncEngine:
    return SyncEngine(
        store,
        embedder,
        chunk_size=settings.CHUNK_SIZE_CHARS,
        chunk_overlap=settings.CHUNK_OVERLAP_CHARS,
        mime_allowlist=settings.mime_whitelist,
    )


def _to_response(report: SyncReport) -> SyncResponse:
    return SyncResponse(
        ok=True,
        files_processed=report.files_processed,
        files_skipped=report.files_skipped,
        files_empty=report.files_empty,
        files_failed=report.files_failed,
        details=report.details,
        failures=report.failures,
        stale_ids=report.stale_ids,
    )


def get_drive_tree() -> SourceTree:
    return GoogleDriveTree(settings.drive_folder_ids, settings.GOOGLE_OAUTH_TOKEN)


def get_pdf_tree() -> SourceTree:
    return LocalPdfTree(settings.PDFS_DIR, settings.PDF_BASE_URL)


@app.get("/sync/status", response_model=SyncStatus, dependencies=[Depends(require_admin)])
def sync_status() -> SyncStatus:
    folder_ids = settings.drive_folder_ids
    has_token = os.path.exists(settings.GOOGLE_OAUTH_TOKEN)
    return SyncStatus(has_token=has_token, folder_ids=folder_ids, can_sync=has_token and bool(folder_ids))


@app.post("/sync/google-drive", response_model=SyncResponse, dependencies=[Depends(require_admin)])
async def sync_google_drive(
    store: DocumentStore = Depends(get_store),
    embedder: EmbeddingOrchestrator = Depends(get_embedder),
    tree: SourceTree = Depends(get_drive_tree),
) -> SyncResponse:
    """Incrementally sync the configured Google Drive folders."""
    report = await _engine(store, embedder).run(tree)
    return _to_response(report)


@app.get("/sync/pdfs/status", response_model=PdfSyncStatus, dependencies=[Depends(require_admin)])
def sync_pdfs_status() -> PdfSyncStatus:
    tree = LocalPdfTree(settings.PDFS_DIR, settings.PDF_BASE_URL)
    return PdfSyncStatus(
        dir=os.path.abspath(settings.PDFS_DIR),
        files_detected=len(tree.iter_paths()),
        base_url=settings.PDF_BASE_URL or None,
    )


@app.post("/sync/pdfs", response_model=SyncResponse, dependencies=[Depends(require_admin)])
async def sync_pdfs(
    store: DocumentStore = Depends(get_store),
    embedder: EmbeddingOrchestrator = Depends(get_embedder),
    tree: SourceTree = Depends(get_pdf_tree),
) -> SyncResponse:
    """Incrementally sync the local PDF directory."""
    report = await _engine(store, embedder).run(tree)
    return _to_response(report)


@app.delete("/documents/{doc_id}", dependencies=[Depends(require_admin)])
async def delete_document(doc_id: str, store: DocumentStore = Depends(get_store)) -> Dict[str, Any]:
    """Remove a document and its chunks (e.g. one reported as stale by a sync)."""
    if not await asyncio.to_thread(store.delete_document, doc_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"ok": True, "id": doc_id}
