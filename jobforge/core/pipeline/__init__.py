"""
Stage pipeline for document-processing jobs.

Stages run in a fixed order; each job's configuration selects which of them
execute. The executor reports progress checkpoints and honours cancellation
between stages.
"""

from jobforge.core.pipeline.executor import PipelineExecutor, PipelineRun, RunOutcome
from jobforge.core.pipeline.interfaces import (
    Document,
    DocumentSource,
    SearchIndex,
    Stage,
    StageContext,
)
from jobforge.core.pipeline.registry import (
    STAGE_ORDER,
    StageRegistry,
    compute_checkpoints,
    create_default_registry,
)
from jobforge.core.pipeline.sources import (
    FileSystemDocumentSource,
    HttpDocumentSource,
    InMemoryDocumentSource,
    create_document_source,
)

__all__ = [
    "PipelineExecutor",
    "PipelineRun",
    "RunOutcome",
    "Document",
    "DocumentSource",
    "SearchIndex",
    "Stage",
    "StageContext",
    "STAGE_ORDER",
    "StageRegistry",
    "compute_checkpoints",
    "create_default_registry",
    "FileSystemDocumentSource",
    "HttpDocumentSource",
    "InMemoryDocumentSource",
    "create_document_source",
]
