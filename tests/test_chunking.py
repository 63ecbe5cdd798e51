"""Tests for knowledge document chunking."""

import pytest

from app.core.chunking import chunk_text


def test_short_text_is_one_chunk():
    chunks = chunk_text("Workmanship warranty covers one year.")

    assert len(chunks) == 1
    assert chunks[0]["chunk_index"] == 0
    assert chunks[0]["content"] == "Workmanship warranty covers one year."


def test_paragraphs_are_packed_up_to_the_limit():
    text = "\n\n".join(["a" * 40, "b" * 40, "c" * 40])

    chunks = chunk_text(text, max_chars=90, overlap=10)

    assert [c["content"] for c in chunks] == ["a" * 40 + "\n\n" + "b" * 40, "c" * 40]
    assert [c["chunk_index"] for c in chunks] == [0, 1]


def test_long_paragraph_is_windowed_with_overlap():
    chunks = chunk_text("x" * 250, max_chars=100, overlap=20)

    assert [len(c["content"]) for c in chunks] == [100, 100, 90]


def test_blank_text_has_no_chunks():
    assert chunk_text("  \n\n  ") == []


def test_metadata_is_copied_per_chunk():
    chunks = chunk_text("one\n\ntwo", max_chars=5, overlap=1, metadata={"kind": "policy"})

    chunks[0]["metadata"]["kind"] = "changed"
    assert chunks[1]["metadata"] == {"kind": "policy"}


def test_overlap_must_be_smaller_than_chunk():
    with pytest.raises(ValueError, match="must be greater than overlap"):
        chunk_text("text", max_chars=10, overlap=10)
