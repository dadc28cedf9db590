"""Utility helpers for identifiers, checksums, file-name metadata, and URLs.

This module provides:
- stable_doc_id: stable SHA-1 based identifier for documents/paths/chunks
- content_checksum: MD5 of raw bytes, used only for change detection
- parse_meta_from_name: heuristic title/author/issue/page extraction from a file name
- normalize_whitespace: collapse runs of whitespace
- pdf_url: public link for a PDF under the local tree
"""
import hashlib
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote


def stable_doc_id(s: str) -> str:
    """Compute a stable 40-char SHA-1 hex identifier for a string.

    Args:
        s: Input string (e.g., relative path or "doc_id:index").

    Returns:
        str: SHA-1 hex digest.
    """
    return hashlib.sha1(s.encode("utf-8")).hexdigest()[:40]


def content_checksum(data: bytes) -> str:
    """MD5 hex digest of file content; not an integrity guarantee."""
    return hashlib.md5(data).hexdigest()


@dataclass
class NameMeta:
    title: str
    author: Optional[str] = None
    issue: Optional[str] = None
    page: Optional[str] = None


_ISSUE = re.compile(r"issue[_\-\s]?(\d+)", re.I)
_PAGE = re.compile(r"(?:^|[^a-z])p(?:age)?[_\-\s]?(\d+)", re.I)


def parse_meta_from_name(name: str) -> NameMeta:
    """Parse display metadata from names like "Issue_12_p34_Title by Author.pdf".

    Args:
        name: File name (with or without extension).

    Returns:
        NameMeta: title (defaults to the base name), plus author/issue/page when found.
    """
    base = re.sub(r"\.[^.]+$", "", name)
    meta = NameMeta(title=base)
    m_issue = _ISSUE.search(base)
    if m_issue:
        meta.issue = m_issue.group(1)
    m_page = _PAGE.search(base)
    if m_page:
        meta.page = m_page.group(1)
    by_idx = base.lower().find(" by ")
    if by_idx > -1:
        meta.title = base[:by_idx].strip()
        meta.author = base[by_idx + 4:].strip() or None
    return meta


def normalize_whitespace(s: str) -> str:
    return re.sub(r"\s+", " ", s or "").strip()


def pdf_url(rel_path: str, base_url: Optional[str] = None) -> str:
    """Link to a PDF: CDN/base URL when configured, otherwise the static /pdfs route.

    Args:
        rel_path: "/"-separated path relative to the PDF root.
        base_url: Optional public prefix.
    """
    enc = "/".join(quote(part, safe="") for part in rel_path.split("/"))
    if base_url:
        return f"{base_url.rstrip('/')}/{enc}"
    return f"/pdfs/{enc}"
