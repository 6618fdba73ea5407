"""
Document sources.

Provides filesystem, HTTP and in-memory implementations of DocumentSource.
"""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Dict, Optional

import requests

from jobforge.core.config import DocumentsConfig
from jobforge.core.exceptions import DocumentLoadError
from jobforge.core.logging import get_logger
from jobforge.core.pipeline.interfaces import Document, DocumentSource

logger = get_logger(__name__)

_FILENAME_PATTERN = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


class FileSystemDocumentSource(DocumentSource):
    """Documents stored as files under a base directory, keyed by filename."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir).resolve()

    def load(self, document_id: str) -> Document:
        path = (self.base_dir / document_id).resolve()
        # Reject ids such as ../../etc/passwd
        if self.base_dir not in path.parents:
            raise DocumentLoadError(f"Document path escapes base directory: {document_id}")
        if not path.is_file():
            raise DocumentLoadError(f"Document not found: {document_id}")

        try:
            content = path.read_bytes()
        except OSError as e:
            raise DocumentLoadError(f"Cannot read document {document_id}: {e}") from e

        return Document(document_id=document_id, content=content, filename=path.name)


class HttpDocumentSource(DocumentSource):
    """
    Documents downloaded from the owner system.

    GET <base_url>/<documentId> with the shared service token.
    """

    def __init__(
        self,
        base_url: str,
        service_token: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.service_token = service_token
        self.timeout = timeout

    def load(self, document_id: str) -> Document:
        url = f"{self.base_url}/{document_id}"
        headers = {}
        if self.service_token:
            headers["X-Service-Token"] = self.service_token

        try:
            response = requests.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as e:
            raise DocumentLoadError(
                f"Timed out downloading document {document_id} after {self.timeout}s"
            ) from e
        except requests.RequestException as e:
            raise DocumentLoadError(f"Cannot download document {document_id}: {e}") from e

        logger.debug("Downloaded document", document_id=document_id, bytes=len(response.content))
        return Document(
            document_id=document_id,
            content=response.content,
            filename=self._filename(response, document_id),
            content_type=response.headers.get("Content-Type"),
        )

    @staticmethod
    def _filename(response: requests.Response, document_id: str) -> str:
        disposition = response.headers.get("Content-Disposition", "")
        match = _FILENAME_PATTERN.search(disposition)
        if match:
            return match.group(1)
        return document_id


class InMemoryDocumentSource(DocumentSource):
    """Documents held in a dict; for tests and one-shot local runs."""

    def __init__(self, documents: Optional[Dict[str, Document]] = None) -> None:
        self._documents: Dict[str, Document] = dict(documents or {})
        self._lock = threading.Lock()

    def add(
        self,
        document_id: str,
        content: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Document:
        document = Document(
            document_id=document_id,
            content=content,
            filename=filename or document_id,
            content_type=content_type,
        )
        with self._lock:
            self._documents[document_id] = document
        return document

    def load(self, document_id: str) -> Document:
        with self._lock:
            document = self._documents.get(document_id)
        if document is None:
            raise DocumentLoadError(f"Document not found: {document_id}")
        return document


def create_document_source(
    config: DocumentsConfig, service_token: Optional[str] = None
) -> DocumentSource:
    """Build the document source selected in configuration."""
    if config.source == "http":
        return HttpDocumentSource(
            base_url=config.base_url or "",
            service_token=service_token,
            timeout=config.download_timeout_seconds,
        )
    return FileSystemDocumentSource(Path(config.base_dir))
