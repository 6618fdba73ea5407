"""Tests for document sources. HTTP calls are mocked at requests.get."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from jobforge.core.config import DocumentsConfig
from jobforge.core.exceptions import DocumentLoadError
from jobforge.core.pipeline.interfaces import Document
from jobforge.core.pipeline.sources import (
    FileSystemDocumentSource,
    HttpDocumentSource,
    InMemoryDocumentSource,
    create_document_source,
)


class TestDocument:
    def test_file_type_from_extension(self):
        assert Document("d", b"", "Report.PDF").file_type == "pdf"

    def test_file_type_from_content_type(self):
        document = Document("d", b"", "d", content_type="image/png; charset=binary")

        assert document.file_type == "png"

    def test_unknown_type(self):
        assert Document("d", b"abc", "d").file_type == "bin"
        assert Document("d", b"abc", "d").size == 3


class TestFileSystemDocumentSource:
    def test_load(self, temp_dir: Path):
        (temp_dir / "notes.txt").write_bytes(b"hello")

        document = FileSystemDocumentSource(temp_dir).load("notes.txt")

        assert document.content == b"hello"
        assert document.file_type == "txt"

    def test_missing_file(self, temp_dir: Path):
        with pytest.raises(DocumentLoadError, match="not found"):
            FileSystemDocumentSource(temp_dir).load("missing.txt")

    def test_path_traversal_rejected(self, temp_dir: Path):
        base = temp_dir / "docs"
        base.mkdir()
        (temp_dir / "secret.txt").write_text("x")

        with pytest.raises(DocumentLoadError, match="escapes"):
            FileSystemDocumentSource(base).load("../secret.txt")


class TestHttpDocumentSource:
    """Tests for downloads from the owner system."""

    def _response(self, content=b"%PDF", headers=None):
        response = MagicMock()
        response.content = content
        response.headers = headers or {}
        response.raise_for_status.return_value = None
        return response

    def test_sends_service_token(self):
        source = HttpDocumentSource("http://owner/documents/", service_token="tok")

        with patch("requests.get", return_value=self._response()) as get:
            source.load("doc-1")

        args, kwargs = get.call_args
        assert args[0] == "http://owner/documents/doc-1"
        assert kwargs["headers"] == {"X-Service-Token": "tok"}
        assert kwargs["timeout"] == 30.0

    def test_filename_from_content_disposition(self):
        response = self._response(
            headers={
                "Content-Disposition": 'attachment; filename="q3 report.pdf"',
                "Content-Type": "application/pdf",
            }
        )

        with patch("requests.get", return_value=response):
            document = HttpDocumentSource("http://owner").load("doc-1")

        assert document.filename == "q3 report.pdf"
        assert document.file_type == "pdf"

    def test_falls_back_to_content_type(self):
        response = self._response(headers={"Content-Type": "text/plain"})

        with patch("requests.get", return_value=response):
            document = HttpDocumentSource("http://owner").load("doc-1")

        assert document.filename == "doc-1"
        assert document.file_type == "txt"

    def test_http_error_is_load_error(self):
        response = self._response()
        response.raise_for_status.side_effect = requests.HTTPError("404 Not Found")

        with patch("requests.get", return_value=response):
            with pytest.raises(DocumentLoadError, match="404"):
                HttpDocumentSource("http://owner").load("doc-1")

    def test_timeout_is_load_error(self):
        with patch("requests.get", side_effect=requests.Timeout()):
            with pytest.raises(DocumentLoadError, match="Timed out"):
                HttpDocumentSource("http://owner", timeout=2.0).load("doc-1")


class TestInMemoryDocumentSource:
    def test_add_and_load(self):
        source = InMemoryDocumentSource()
        source.add("doc-1", b"text", filename="a.txt")

        assert source.load("doc-1").filename == "a.txt"

    def test_missing_document(self):
        with pytest.raises(DocumentLoadError):
            InMemoryDocumentSource().load("doc-1")


class TestCreateDocumentSource:
    def test_filesystem_by_default(self, temp_dir: Path):
        source = create_document_source(DocumentsConfig(base_dir=str(temp_dir)))

        assert isinstance(source, FileSystemDocumentSource)

    def test_http(self):
        source = create_document_source(
            DocumentsConfig(source="http", base_url="http://owner/documents"),
            service_token="tok",
        )

        assert isinstance(source, HttpDocumentSource)
        assert source.service_token == "tok"
