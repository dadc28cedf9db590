"""Tests for the local PDF and Google Drive source trees."""

import pytest

from archivist.errors import ConfigurationError
from archivist.sources import GOOGLE_DOC_MIME, GoogleDriveTree, LocalPdfTree
from archivist.utils import content_checksum, stable_doc_id


@pytest.mark.asyncio
async def test_local_tree_lists_pdfs_recursively(tmp_path):
    (tmp_path / "2024").mkdir()
    (tmp_path / "2024" / "Issue 1.pdf").write_bytes(b"%PDF-one")
    (tmp_path / "b.PDF").write_bytes(b"%PDF-two")
    (tmp_path / "notes.txt").write_text("skip me")

    tree = LocalPdfTree(str(tmp_path), base_url="https://cdn.example.org")
    files = await tree.list_candidates()

    assert [f.name for f in files] == ["b.PDF", "Issue 1.pdf"]
    issue = files[1]
    assert issue.id == stable_doc_id("2024/Issue 1.pdf")
    assert issue.checksum == content_checksum(b"%PDF-one")
    assert issue.url == "https://cdn.example.org/2024/Issue%201.pdf"
    assert issue.modified_time.endswith("Z")
    assert await tree.fetch(issue) == (b"%PDF-one", "application/pdf")


@pytest.mark.asyncio
async def test_local_tree_missing_directory(tmp_path):
    tree = LocalPdfTree(str(tmp_path / "absent"))
    assert tree.iter_paths() == []
    with pytest.raises(ConfigurationError):
        await tree.list_candidates()


class _Request:
    def __init__(self, result=None, payload=b""):
        self._result = result
        self.payload = payload

    def execute(self):
        return self._result


class _FakeFiles:
    """Mimics the files() resource for a two-level folder tree with paging."""

    def __init__(self):
        self.calls = []
        self.contents = {"d1": b"garden notes", "p1": b"%PDF-one"}
        self.pages = {
            ("root", None): {
                "files": [
                    {"id": "sub", "name": "Sub", "mimeType": "application/vnd.google-apps.folder"},
                    {"id": "p1", "name": "Issue 1.pdf", "mimeType": "application/pdf", "md5Checksum": "m1"},
                ],
                "nextPageToken": "next",
            },
            ("root", "next"): {
                "files": [
                    {"id": "d1", "name": "Doc", "mimeType": GOOGLE_DOC_MIME, "modifiedTime": "2024-01-01T00:00:00Z"},
                ]
            },
            ("sub", None): {
                "files": [{"id": "p2", "name": "Nested.pdf", "mimeType": "application/pdf", "md5Checksum": "m2"}]
            },
        }

    def list(self, q, fields, pageToken=None):
        folder = q.split("'")[1]
        return _Request(self.pages[(folder, pageToken)])

    def export_media(self, fileId, mimeType):
        self.calls.append(("export", fileId, mimeType))
        return _Request(payload=self.contents[fileId])

    def get_media(self, fileId):
        self.calls.append(("get", fileId))
        return _Request(payload=self.contents[fileId])


class _FakeService:
    def __init__(self):
        self._files = _FakeFiles()

    def files(self):
        return self._files


@pytest.mark.asyncio
async def test_drive_tree_walks_folders_and_pages():
    tree = GoogleDriveTree(["root"], "unused-token.json", service=_FakeService())

    files = await tree.list_candidates()

    assert [f.id for f in files] == ["p2", "p1", "d1"]
    doc = files[2]
    assert doc.checksum is None
    assert doc.modified_time == "2024-01-01T00:00:00Z"
    assert files[0].checksum == "m2"


class _OneChunkDownload:
    def __init__(self, fd, request):
        self._fd = fd
        self._request = request

    def next_chunk(self):
        self._fd.write(self._request.payload)
        return None, True


@pytest.mark.asyncio
async def test_drive_fetch_exports_docs_and_downloads_binaries(monkeypatch):
    monkeypatch.setattr("archivist.sources.MediaIoBaseDownload", _OneChunkDownload)
    service = _FakeService()
    tree = GoogleDriveTree(["root"], "unused-token.json", service=service)
    files = {f.id: f for f in await tree.list_candidates()}
    doc, pdf = files["d1"], files["p1"]

    assert await tree.fetch(doc) == (b"garden notes", "text/plain")
    assert await tree.fetch(pdf) == (b"%PDF-one", "application/pdf")
    assert service.files().calls == [("export", "d1", "text/plain"), ("get", "p1")]


def test_drive_tree_requires_folders():
    with pytest.raises(ConfigurationError):
        GoogleDriveTree([], "token.json")


@pytest.mark.asyncio
async def test_drive_tree_requires_token(tmp_path):
    tree = GoogleDriveTree(["root"], str(tmp_path / "missing.json"))
    with pytest.raises(ConfigurationError):
        await tree.list_candidates()
