"""Pydantic request/response schemas for the API.

Defines the public contracts used by the FastAPI endpoints:
- AskRequest: Input payload for the streaming question-answering endpoint.
- SyncResponse: Summary of one sync run (counts, per-file details, failures, stale ids).
- SyncStatus / PdfSyncStatus: Readiness of the Google Drive and local PDF sources.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    """Request body for asking a question over the archive.

    Attributes:
        message: The user question. Its maximum length is enforced by the route
            (settings.MAX_MESSAGE_CHARS) so it can change without a schema change.
    """
    message: str = Field(..., min_length=1, description="User question")


class SyncFileResult(BaseModel):
    id: str
    name: str
    chunks: int


class SyncFailure(BaseModel):
    id: str
    name: str
    error: str


class SyncResponse(BaseModel):
    """Response body returned by the sync endpoints.

    Attributes:
        ok: Always true when the run itself completed; per-file errors are in failures.
        files_processed: Files re-ingested in this run.
        files_skipped: Files whose fingerprint was unchanged.
        files_empty: Files abandoned because no text could be extracted.
        files_failed: Files whose processing raised.
        details: One entry per processed file with its chunk count.
        failures: One entry per failed file with the error message.
        stale_ids: Stored documents of this source that are no longer listed.
    """
    ok: bool = True
    files_processed: int
    files_skipped: int
    files_empty: int
    files_failed: int
    details: List[SyncFileResult] = []
    failures: List[SyncFailure] = []
    stale_ids: List[str] = []


class SyncStatus(BaseModel):
    admin: bool = True
    has_token: bool
    folder_ids: List[str]
    can_sync: bool


class PdfSyncStatus(BaseModel):
    dir: str
    files_detected: int
    base_url: Optional[str] = None
