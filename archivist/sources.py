"""Source trees the sync engine can walk.

A SourceTree lists candidate files (identity + change-detection fields) and fetches their
raw bytes on demand:
- LocalPdfTree: recursive walk of a local directory of PDFs.
- GoogleDriveTree: recursive walk of one or more Google Drive folders using a stored
  authorized-user token (obtaining that token is outside this package).

Blocking filesystem and Google API calls run in worker threads.
"""
from __future__ import annotations

import asyncio
import io
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.http import MediaIoBaseDownload

from archivist.errors import ConfigurationError
from archivist.extraction import GOOGLE_DOC_MIME
from archivist.utils import content_checksum, pdf_url, stable_doc_id

logger = logging.getLogger(__name__)

DRIVE_FOLDER_MIME = "application/vnd.google-apps.folder"
DRIVE_SCOPES = [
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/documents.readonly",
]
DRIVE_LIST_FIELDS = "nextPageToken, files(id, name, mimeType, webViewLink, modifiedTime, md5Checksum, size)"


@dataclass
class SourceFile:
    """A candidate file as seen by a source tree."""
    id: str
    name: str
    mime_type: str
    modified_time: Optional[str] = None
    checksum: Optional[str] = None
    url: Optional[str] = None
    handle: Any = None


class SourceTree:
    """Capability interface: list candidates under a root and fetch their bytes."""

    tag = "base"

    async def list_candidates(self) -> List[SourceFile]:
        raise NotImplementedError

    async def fetch(self, file: SourceFile) -> Tuple[bytes, str]:
        """Return (raw bytes, mime type of those bytes)."""
        raise NotImplementedError


class LocalPdfTree(SourceTree):
    """PDFs under a local directory.

    Identity is the SHA-1 of the "/"-joined path relative to root; the fingerprint is the
    MD5 of the file content.
    """

    tag = "pdfs-local"

    def __init__(self, root: str, base_url: Optional[str] = None) -> None:
        self.root = root
        self.base_url = base_url or None

    def iter_paths(self) -> List[str]:
        """Absolute paths of *.pdf files, in a stable sorted walk order."""
        out: List[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames.sort()
            for name in sorted(filenames):
                if name.lower().endswith(".pdf"):
                    out.append(os.path.join(dirpath, name))
        return out

    def _describe(self, path: str) -> SourceFile:
        rel = os.path.relpath(path, self.root).replace(os.sep, "/")
        with open(path, "rb") as f:
            checksum = content_checksum(f.read())
        mtime = datetime.fromtimestamp(os.stat(path).st_mtime, tz=timezone.utc)
        return SourceFile(
            id=stable_doc_id(rel),
            name=os.path.basename(rel),
            mime_type="application/pdf",
            modified_time=mtime.isoformat().replace("+00:00", "Z"),
            checksum=checksum,
            url=pdf_url(rel, self.base_url),
            handle=path,
        )

    def _list(self) -> List[SourceFile]:
        if not os.path.isdir(self.root):
            raise ConfigurationError(f"PDF directory not found: {self.root}")
        return [self._describe(p) for p in self.iter_paths()]

    async def list_candidates(self) -> List[SourceFile]:
        return await asyncio.to_thread(self._list)

    async def fetch(self, file: SourceFile) -> Tuple[bytes, str]:
        def _read() -> bytes:
            with open(file.handle, "rb") as f:
                return f.read()

        return await asyncio.to_thread(_read), file.mime_type


class GoogleDriveTree(SourceTree):
    """Files under Google Drive folders, walked recursively.

    Google Docs are exported as text/plain; other files are downloaded as-is.
    """

    tag = "google-drive"

    def __init__(self, folder_ids: Sequence[str], token_path: str, service: Any = None) -> None:
        if not folder_ids:
            raise ConfigurationError("Set GOOGLE_DRIVE_FOLDER_IDS")
        self.folder_ids = list(folder_ids)
        self.token_path = token_path
        self._service = service

    def _build_service(self) -> Any:
        if self._service is not None:
            return self._service
        if not os.path.exists(self.token_path):
            raise ConfigurationError(f"Missing Google OAuth token at {self.token_path}")
        credentials = Credentials.from_authorized_user_file(self.token_path, DRIVE_SCOPES)
        self._service = build("drive", "v3", credentials=credentials, cache_discovery=False)
        return self._service

    def _list_folder(self, service: Any, folder_id: str, out: List[SourceFile]) -> None:
        page_token = None
        while True:
            res = (
                service.files()
                .list(
                    q=f"'{folder_id}' in parents and trashed = false",
                    fields=DRIVE_LIST_FIELDS,
                    pageToken=page_token,
                )
                .execute()
            )
            for f in res.get("files", []):
                if f.get("mimeType") == DRIVE_FOLDER_MIME:
                    self._list_folder(service, f["id"], out)
                else:
                    out.append(
                        SourceFile(
                            id=f["id"],
                            name=f.get("name", f["id"]),
                            mime_type=f.get("mimeType", "application/octet-stream"),
                            modified_time=f.get("modifiedTime"),
                            checksum=f.get("md5Checksum"),
                            url=f.get("webViewLink"),
                            handle=f["id"],
                        )
                    )
            page_token = res.get("nextPageToken")
            if not page_token:
                break

    def _list(self) -> List[SourceFile]:
        service = self._build_service()
        out: List[SourceFile] = []
        for folder_id in self.folder_ids:
            self._list_folder(service, folder_id, out)
        logger.info("Listed %d files under %d Drive folders", len(out), len(self.folder_ids))
        return out

    def _download(self, file: SourceFile) -> Tuple[bytes, str]:
        service = self._build_service()
        if file.mime_type == GOOGLE_DOC_MIME:
            request = service.files().export_media(fileId=file.handle, mimeType="text/plain")
            mime_type = "text/plain"
        else:
            request = service.files().get_media(fileId=file.handle)
            mime_type = file.mime_type
        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, request)
        done = False
        while not done:
            status, done = downloader.next_chunk()
            if status:
                logger.debug("Download %s progress: %s%%", file.id, int(status.progress() * 100))
        return buffer.getvalue(), mime_type

    async def list_candidates(self) -> List[SourceFile]:
        return await asyncio.to_thread(self._list)

    async def fetch(self, file: SourceFile) -> Tuple[bytes, str]:
        return await asyncio.to_thread(self._download, file)
