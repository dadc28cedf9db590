"""Tests for paragraph-aware chunking."""

import pytest

from archivist.chunking import chunk_text, hard_split, split_paragraphs


def _paragraphs(n: int, size: int):
    return [chr(ord("a") + i % 26) * size for i in range(n)]


def test_split_paragraphs_trims_and_drops_empty():
    text = "  first  \n\n\n   \n second\nline \n \n third"
    assert split_paragraphs(text) == ["first", "second\nline", "third"]


def test_empty_text_yields_nothing():
    assert list(chunk_text("", 100, 10)) == []
    assert list(chunk_text("\n\n  \n\n", 100, 10)) == []


def test_small_paragraphs_are_packed_with_blank_line():
    assert list(chunk_text("one\n\ntwo\n\nthree", 100, 10)) == ["one\n\ntwo\n\nthree"]


def test_every_chunk_within_bound():
    paras = _paragraphs(40, 37) + ["x" * 250] + _paragraphs(10, 90)
    text = "\n\n".join(paras)
    chunks = list(chunk_text(text, 120, 30))
    assert chunks
    assert all(0 < len(c) <= 120 for c in chunks)


def test_every_paragraph_is_covered():
    paras = _paragraphs(30, 45)
    chunks = list(chunk_text("\n\n".join(paras), 100, 20))
    joined = "\n".join(chunks)
    for p in paras:
        assert p in joined


def test_overflow_seeds_next_chunk_with_tail_of_previous():
    a, b, c = "A" * 40, "B" * 40, "C" * 40
    chunks = list(chunk_text(f"{a}\n\n{b}\n\n{c}", 90, 10))
    assert chunks[0] == f"{a}\n\n{b}"
    assert chunks[1] == f"{'B' * 10}\n{c}"


def test_overlap_shrinks_so_seed_and_paragraph_fit():
    a, b = "A" * 30, "B" * 95
    chunks = list(chunk_text(f"{a}\n\n{b}", 100, 20))
    assert chunks[0] == a
    # 100 - 95 - 1 leaves room for four characters of overlap
    assert chunks[1] == f"{'A' * 4}\n{b}"
    assert len(chunks[1]) == 100


def test_oversized_paragraph_flushes_buffer_and_is_hard_split():
    big = "z" * 250
    chunks = list(chunk_text(f"head\n\n{big}\n\ntail", 100, 10))
    assert chunks == ["head", "z" * 100, "z" * 100, "z" * 50, "tail"]


def test_generator_is_restartable():
    text = "\n\n".join(_paragraphs(12, 30))
    assert list(chunk_text(text, 70, 5)) == list(chunk_text(text, 70, 5))


def test_hard_split_exact_slices():
    assert hard_split("abcdefg", 3) == ["abc", "def", "g"]
    assert hard_split("", 3) == []


@pytest.mark.parametrize("max_chars,overlap", [(0, 0), (-5, 0), (10, -1), (10, 10), (10, 11)])
def test_invalid_arguments_raise(max_chars, overlap):
    with pytest.raises(ValueError):
        list(chunk_text("text", max_chars, overlap))


def test_hard_split_rejects_non_positive_size():
    with pytest.raises(ValueError):
        hard_split("abc", 0)
