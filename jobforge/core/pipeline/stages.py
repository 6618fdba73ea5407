"""
Default processing stages.

Lightweight reference implementations of the six stages. Heavy libraries
(PyMuPDF, python-docx, pytesseract, Pillow) are imported only when a
document actually needs them.

Stage                 Output keys
--------------------  ------------------------------
extract_text          extractedText
perform_ocr           ocrText
extract_keywords      keywords
generate_summary      summary
detect_language       language
index_for_search      searchIndexed, indexedTerms
"""

from __future__ import annotations

import io
import re
import threading
from collections import Counter, defaultdict
from typing import Any, Dict, List, Optional, Tuple

from jobforge.core.exceptions import DependencyError, StageError
from jobforge.core.logging import get_logger
from jobforge.core.pipeline.interfaces import Stage, StageContext

logger = get_logger(__name__)

IMAGE_TYPES = frozenset(["png", "jpg", "jpeg", "tiff", "tif", "bmp", "gif"])

_WORD_PATTERN = re.compile(r"[^\W\d_]+", re.UNICODE)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

STOPWORDS: Dict[str, frozenset] = {
    "en": frozenset(
        "the and is in to of a that it for on with as was are be this by "
        "at from or an have not but they which you were his her".split()
    ),
    "es": frozenset(
        "el la de que y en los las un una por con para es del se no al "
        "lo como más pero sus le ya".split()
    ),
    "fr": frozenset(
        "le la les de des et est un une du en que qui dans pour pas sur "
        "au avec ce il elle sont par".split()
    ),
    "de": frozenset(
        "der die das und ist nicht ein eine zu den von mit sich des auf "
        "für im dem auch es an als".split()
    ),
}

# Distinct stopword hits required before a language is reported
LANGUAGE_MIN_HITS = 4


def tokenize(text: str) -> List[str]:
    """Lower-case word tokens."""
    return [w.lower() for w in _WORD_PATTERN.findall(text)]


ALL_STOPWORDS = frozenset().union(*STOPWORDS.values())


class TextExtractionStage(Stage):
    """Extract text from plain-text, PDF and DOCX documents."""

    name = "extract_text"

    def execute(self, context: StageContext) -> Dict[str, Any]:
        document = context.document
        file_type = document.file_type

        if file_type == "pdf":
            text = self._extract_pdf(document.content)
        elif file_type == "docx":
            text = self._extract_docx(document.content)
        elif file_type in IMAGE_TYPES:
            # Images carry no text layer; OCR handles them
            text = ""
        else:
            text = document.content.decode("utf-8", errors="ignore")

        return {"extractedText": self._clean_text(text)}

    def _extract_pdf(self, content: bytes) -> str:
        try:
            import fitz  # PyMuPDF
        except ImportError as e:
            raise DependencyError(
                "PyMuPDF is required for PDF extraction. "
                "Install with: pip install 'jobforge[documents]'",
                stage=self.name,
            ) from e

        with fitz.open(stream=content, filetype="pdf") as doc:
            return "\n\n".join(page.get_text() for page in doc)

    def _extract_docx(self, content: bytes) -> str:
        try:
            from docx import Document
        except ImportError as e:
            raise DependencyError(
                "python-docx is required for DOCX extraction. "
                "Install with: pip install 'jobforge[documents]'",
                stage=self.name,
            ) from e

        doc = Document(io.BytesIO(content))
        return "\n\n".join(p.text.strip() for p in doc.paragraphs if p.text.strip())

    @staticmethod
    def _clean_text(text: str) -> str:
        text = text.replace("\x00", "")
        text = re.sub(r"[ \t]+", " ", text)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()


class OCRStage(Stage):
    """Run Tesseract OCR on image documents. Other types yield empty text."""

    name = "perform_ocr"

    def __init__(self, language: str = "eng") -> None:
        self.language = language

    def is_available(self) -> bool:
        import importlib.util

        return (
            importlib.util.find_spec("pytesseract") is not None
            and importlib.util.find_spec("PIL") is not None
        )

    def execute(self, context: StageContext) -> Dict[str, Any]:
        document = context.document
        if document.file_type not in IMAGE_TYPES:
            return {"ocrText": ""}

        try:
            import pytesseract
            from PIL import Image
        except ImportError as e:
            raise DependencyError(
                "pytesseract and Pillow are required for OCR. "
                "Install with: pip install 'jobforge[ocr]'",
                stage=self.name,
            ) from e

        try:
            image = Image.open(io.BytesIO(document.content))
            text = pytesseract.image_to_string(image, lang=self.language)
        except pytesseract.TesseractNotFoundError as e:
            raise DependencyError(
                "The tesseract binary is not installed", stage=self.name
            ) from e

        return {"ocrText": text.strip()}


class KeywordStage(Stage):
    """Most frequent non-stopword terms of the document text."""

    name = "extract_keywords"

    def __init__(self, max_keywords: int = 10, min_length: int = 4) -> None:
        self.max_keywords = max_keywords
        self.min_length = min_length

    def execute(self, context: StageContext) -> Dict[str, Any]:
        text = context.text
        if not text:
            return {"keywords": ["document", "file", context.document.file_type]}

        counts = Counter(
            word
            for word in tokenize(text)
            if len(word) >= self.min_length and word not in ALL_STOPWORDS
        )
        # most_common keeps first-seen order among equal counts
        keywords = [word for word, _ in counts.most_common(self.max_keywords)]
        return {"keywords": keywords or ["document", "content", "text"]}


class SummaryStage(Stage):
    """Extractive summary: the highest-scoring sentences in document order."""

    name = "generate_summary"

    def __init__(self, max_sentences: int = 3, max_chars: int = 500) -> None:
        self.max_sentences = max_sentences
        self.max_chars = max_chars

    def execute(self, context: StageContext) -> Dict[str, Any]:
        text = context.text
        if not text:
            return {
                "summary": (
                    f"Summary for {context.document.filename}: This document contains "
                    "content that could not be processed for summary generation."
                )
            }

        sentences = [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]
        if len(sentences) <= self.max_sentences:
            return {"summary": self._truncate(" ".join(sentences))}

        frequencies = Counter(w for w in tokenize(text) if w not in ALL_STOPWORDS)

        def score(sentence: str) -> float:
            words = [w for w in tokenize(sentence) if w not in ALL_STOPWORDS]
            if not words:
                return 0.0
            return sum(frequencies[w] for w in words) / len(words)

        ranked = sorted(range(len(sentences)), key=lambda i: score(sentences[i]), reverse=True)
        chosen = sorted(ranked[: self.max_sentences])
        return {"summary": self._truncate(" ".join(sentences[i] for i in chosen))}

    def _truncate(self, summary: str) -> str:
        if len(summary) <= self.max_chars:
            return summary
        return summary[: self.max_chars - 3].rstrip() + "..."


class LanguageStage(Stage):
    """Stopword-based language detection."""

    name = "detect_language"

    def execute(self, context: StageContext) -> Dict[str, Any]:
        text = context.text
        if not text:
            return {"language": "unknown"}
        return {"language": detect_language(text)}


def detect_language(text: str) -> str:
    """
    Guess the language of a text.

    Returns the ISO 639-1 code whose stopword list has the most distinct hits,
    or "unknown" when no language reaches LANGUAGE_MIN_HITS.
    """
    words = set(tokenize(text))
    best, best_hits = "unknown", 0
    for language, stopwords in STOPWORDS.items():
        hits = len(words & stopwords)
        if hits > best_hits:
            best, best_hits = language, hits
    return best if best_hits >= LANGUAGE_MIN_HITS else "unknown"


class InMemorySearchIndex:
    """
    Thread-safe inverted index with term-frequency scoring.

    Postings map term -> {document_id: count}.
    """

    def __init__(self) -> None:
        self._postings: Dict[str, Dict[str, int]] = defaultdict(dict)
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def add(self, document_id: str, text: str, metadata: Dict[str, Any]) -> int:
        counts = Counter(w for w in tokenize(text) if w not in ALL_STOPWORDS)
        with self._lock:
            self._remove_locked(document_id)
            for term, count in counts.items():
                self._postings[term][document_id] = count
            self._documents[document_id] = {"terms": list(counts), **metadata}
        return len(counts)

    def remove(self, document_id: str) -> bool:
        with self._lock:
            return self._remove_locked(document_id)

    def _remove_locked(self, document_id: str) -> bool:
        entry = self._documents.pop(document_id, None)
        if entry is None:
            return False
        for term in entry["terms"]:
            postings = self._postings.get(term)
            if postings is None:
                continue
            postings.pop(document_id, None)
            if not postings:
                del self._postings[term]
        return True

    def search(self, query: str, limit: int = 10) -> List[Tuple[str, float]]:
        scores: Dict[str, float] = defaultdict(float)
        with self._lock:
            for term in set(tokenize(query)):
                for document_id, count in self._postings.get(term, {}).items():
                    scores[document_id] += count
        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:limit]

    def get(self, document_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._documents.get(document_id)
            return dict(entry) if entry else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)


class SearchIndexStage(Stage):
    """Write the document text and earlier stage outputs to a search index."""

    name = "index_for_search"

    def __init__(self, index: Any) -> None:
        self.index = index

    def execute(self, context: StageContext) -> Dict[str, Any]:
        text = context.text or ""
        extra = " ".join(context.results.get("keywords") or [])
        metadata = {
            "jobId": context.job_id,
            "language": context.results.get("language"),
            "summary": context.results.get("summary"),
        }
        try:
            terms = self.index.add(context.document_id, f"{text} {extra}", metadata)
        except Exception as e:
            raise StageError(f"Search indexing failed: {e}", stage=self.name) from e

        logger.debug("Indexed document", document_id=context.document_id, terms=terms)
        return {"searchIndexed": True, "indexedTerms": terms}
