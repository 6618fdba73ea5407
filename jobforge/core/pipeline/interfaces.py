"""
Core interfaces for the processing pipeline.

Defines the contracts between the executor and its pluggable collaborators:
stages, document sources and the search index.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Protocol, Tuple

from jobforge.core.jobs.models import JobConfig

# Content-Type -> file type for sources that do not provide a filename
MIME_FILE_TYPES = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/msword": "doc",
    "text/plain": "txt",
    "text/markdown": "md",
    "text/html": "html",
    "text/csv": "csv",
    "application/json": "json",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/tiff": "tiff",
    "image/bmp": "bmp",
}


@dataclass(frozen=True)
class Document:
    """Bytes of one document plus what is known about its type."""

    document_id: str
    content: bytes
    filename: str
    content_type: Optional[str] = None

    @property
    def file_type(self) -> str:
        """Lower-case extension without the dot, e.g. 'pdf'."""
        suffix = PurePosixPath(self.filename).suffix.lower().lstrip(".")
        if suffix:
            return suffix
        if self.content_type:
            mime = self.content_type.split(";")[0].strip().lower()
            return MIME_FILE_TYPES.get(mime, "bin")
        return "bin"

    @property
    def size(self) -> int:
        return len(self.content)


class DocumentSource(ABC):
    """Where the bytes behind a documentId come from."""

    @abstractmethod
    def load(self, document_id: str) -> Document:
        """
        Load a document.

        Raises:
            DocumentLoadError: The document cannot be found or read.
        """
        pass


class SearchIndex(Protocol):
    """Index written by the search indexing stage."""

    def add(self, document_id: str, text: str, metadata: Dict[str, Any]) -> int:
        """Index a document, replacing any previous version. Returns term count."""
        ...

    def remove(self, document_id: str) -> bool:
        """Drop a document from the index."""
        ...

    def search(self, query: str, limit: int = 10) -> List[Tuple[str, float]]:
        """Return (document_id, score) pairs, best first."""
        ...


class StageContext:
    """
    State shared by the stages of one pipeline run.

    The document is loaded lazily on first access, so a run whose stages
    never touch the bytes never hits the document source.
    """

    def __init__(
        self,
        job_id: str,
        document_id: str,
        config: JobConfig,
        source: DocumentSource,
        attempt: int = 1,
    ) -> None:
        self.job_id = job_id
        self.document_id = document_id
        self.config = config
        self.attempt = attempt
        self.results: Dict[str, Any] = {}
        self._source = source
        self._document: Optional[Document] = None

    @property
    def document(self) -> Document:
        if self._document is None:
            self._document = self._source.load(self.document_id)
        return self._document

    @property
    def text(self) -> Optional[str]:
        """
        Best text produced so far.

        Extracted text first, then OCR text. None when neither stage ran or
        both produced nothing.
        """
        for key in ("extractedText", "ocrText"):
            value = self.results.get(key)
            if value:
                return value
        return None

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.config.metadata


class Stage(ABC):
    """
    One pluggable unit of processing.

    `name` matches the JobConfig toggle that enables the stage. `execute`
    runs in a worker thread and returns a mapping merged into the job result.
    Raising any exception fails the attempt.
    """

    name: str = ""

    @abstractmethod
    def execute(self, context: StageContext) -> Dict[str, Any]:
        """
        Run the stage.

        Args:
            context: Document access and results of earlier stages.

        Returns:
            Outputs to merge into the job result.
        """
        pass

    def is_available(self) -> bool:
        """Check if the stage's dependencies are installed."""
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
