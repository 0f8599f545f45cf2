"""
Tests for text extraction, storage paths and local object storage.
"""
import re

import pytest

from doc_chat.exception.custom_exception import (
    ExtractionError,
    StorageError,
    UnsupportedFileTypeError,
)
from doc_chat.utils.document_ops import extract_text, normalize_mime_type
from doc_chat.utils.file_io import LocalObjectStorage, build_storage_path
from doc_chat.utils.ids import generate_chunk_id, generate_conversation_id
from tests.conftest import blank_pdf


class TestExtractText:
    async def test_plain_text(self):
        assert await extract_text("héllo".encode(), "text/plain") == "héllo"

    async def test_plain_text_with_charset(self):
        assert await extract_text(b"hello", "text/plain; charset=utf-8") == "hello"

    async def test_invalid_utf8_is_replaced(self):
        text = await extract_text(b"ok \xff", "text/plain")

        assert text.startswith("ok ")
        assert "�" in text

    async def test_pdf_without_text_layer(self):
        text = await extract_text(blank_pdf(), "application/pdf")

        assert text.strip() == ""

    async def test_corrupt_pdf(self):
        with pytest.raises(ExtractionError):
            await extract_text(b"definitely not a pdf", "application/pdf", file_name="bad.pdf")

    async def test_unsupported_type(self):
        with pytest.raises(UnsupportedFileTypeError):
            await extract_text(b"\x89PNG", "image/png")

    def test_normalize_mime_type(self):
        assert normalize_mime_type("Text/Plain; charset=UTF-8") == "text/plain"
        assert normalize_mime_type(None) == ""


class TestStorage:
    def test_storage_path_is_namespaced(self):
        path = build_storage_path("user 1", "conv/1", "Report.Final.PDF")

        assert re.fullmatch(r"user_1/conv_1/\d+_[0-9a-f]{8}\.pdf", path)

    def test_same_millisecond_uploads_get_distinct_paths(self, monkeypatch):
        monkeypatch.setattr("doc_chat.utils.file_io.time.time", lambda: 1_700_000_000.0)

        first = build_storage_path("u", "c", "a.txt")
        second = build_storage_path("u", "c", "a.txt")

        assert first != second
        assert first.startswith("u/c/1700000000000_")

    def test_storage_path_without_extension(self):
        assert build_storage_path("u", "c", "README").endswith(".bin")

    async def test_put_writes_bytes(self, tmp_path):
        storage = LocalObjectStorage(tmp_path)

        await storage.put("u/c/1.txt", b"payload")

        assert (tmp_path / "u" / "c" / "1.txt").read_bytes() == b"payload"

    async def test_put_refuses_escaping_paths(self, tmp_path):
        storage = LocalObjectStorage(tmp_path / "root")

        with pytest.raises(StorageError):
            await storage.put("../outside.txt", b"payload")


class TestIds:
    def test_conversation_id_shape(self):
        assert re.fullmatch(r"conv_\d{2}_[a-z]{3}_\d{4}_\d{1,2}\d{2}[ap]m_[0-9a-f]{8}", generate_conversation_id())

    def test_chunk_ids_sort_by_position(self):
        ids = [generate_chunk_id("conv-1", p) for p in (0, 2, 10, 100)]

        assert sorted(ids) == ids
