"""Quick text-layer diagnostics for a PDF.

Reports page count, extracted characters and words, words per page and the share of
alphabetic characters, and flags files that most likely need OCR before they can be
indexed (scanned pages yield little or no text).

Usage:
  python -m archivist.ingestion.inspect_pdf data/pdfs/issue-12.pdf
"""
import argparse
import logging
import re
import sys
from dataclasses import dataclass
from typing import List

from archivist.extraction import extract_pdf_pages

logger = logging.getLogger(__name__)

MIN_WORDS_PER_PAGE = 50
MIN_ALPHA_RATIO = 0.05


@dataclass
class PdfTextStats:
    pages: int
    chars: int
    words: int
    words_per_page: float
    alpha_ratio: float

    @property
    def likely_needs_ocr(self) -> bool:
        return self.words_per_page < MIN_WORDS_PER_PAGE or self.alpha_ratio < MIN_ALPHA_RATIO


def text_stats(pages: List[str]) -> PdfTextStats:
    text = "\n".join(pages)
    words = len(re.findall(r"\S+", text))
    alpha = sum(1 for ch in text if ch.isalpha())
    n_pages = len(pages)
    return PdfTextStats(
        pages=n_pages,
        chars=len(text),
        words=words,
        words_per_page=words / n_pages if n_pages else 0.0,
        alpha_ratio=alpha / len(text) if text else 0.0,
    )


def inspect(path: str) -> PdfTextStats:
    with open(path, "rb") as f:
        pages = extract_pdf_pages(f.read())
    return text_stats(pages)


def main():
    parser = argparse.ArgumentParser(description="Report how much text a PDF's text layer yields.")
    parser.add_argument("path", help="PDF file to inspect")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: WARNING)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    stats = inspect(args.path)
    print(f"File:            {args.path}")
    print(f"Pages:           {stats.pages}")
    print(f"Characters:      {stats.chars}")
    print(f"Words:           {stats.words}")
    print(f"Words per page:  {stats.words_per_page:.1f}")
    print(f"Alpha ratio:     {stats.alpha_ratio:.3f}")
    if stats.likely_needs_ocr:
        print("Verdict:         likely needs OCR (little extractable text)")
        sys.exit(1)
    print("Verdict:         text layer looks usable")


if __name__ == "__main__":
    main()
