"""
Stage registry.

Maps stage toggle names to Stage implementations, fixes the execution order
and computes the progress checkpoint reached after each enabled stage.

Checkpoints
-----------
Each stage carries a weight. With all six stages enabled the checkpoints are
10/30/50/70/85/100. With a subset enabled the weights of the enabled stages
are rescaled to sum to 100, so the last enabled stage always reaches 100:

    extract_text only                  -> 100
    extract_text + extract_keywords    -> 33, 100
"""

from __future__ import annotations

from typing import Dict, List, Optional

from jobforge.core.config import PipelineConfig
from jobforge.core.exceptions import ConfigValidationError, ValidationError
from jobforge.core.jobs.models import STAGE_FLAGS, JobConfig
from jobforge.core.pipeline.interfaces import Stage

STAGE_ORDER: List[str] = list(STAGE_FLAGS)

STAGE_WEIGHTS: Dict[str, int] = {
    "extract_text": 10,
    "perform_ocr": 20,
    "extract_keywords": 20,
    "generate_summary": 20,
    "detect_language": 15,
    "index_for_search": 15,
}


class StageRegistry:
    """Registered stages, executed in the fixed STAGE_ORDER."""

    def __init__(self) -> None:
        self._stages: Dict[str, Stage] = {}

    def register(self, stage: Stage) -> None:
        """Register a stage, replacing any stage with the same name."""
        if stage.name not in STAGE_WEIGHTS:
            raise ConfigValidationError(
                f"Unknown stage name '{stage.name}'. "
                f"Valid names: {', '.join(STAGE_ORDER)}"
            )
        self._stages[stage.name] = stage

    def get(self, name: str) -> Optional[Stage]:
        return self._stages.get(name)

    @property
    def names(self) -> List[str]:
        """Registered stage names in execution order."""
        return [name for name in STAGE_ORDER if name in self._stages]

    def validate(self, config: JobConfig) -> None:
        """
        Check that a job configuration can run.

        Raises:
            ValidationError: No stage enabled, or an enabled stage is missing.
        """
        enabled = config.enabled_stages
        if not enabled:
            raise ValidationError("At least one processing stage must be enabled")
        missing = [name for name in enabled if name not in self._stages]
        if missing:
            raise ValidationError(
                f"No stage registered for: {', '.join(STAGE_FLAGS[m] for m in missing)}"
            )

    def enabled_stages(self, config: JobConfig) -> List[Stage]:
        """Stages enabled by `config`, in execution order."""
        self.validate(config)
        return [self._stages[name] for name in STAGE_ORDER if getattr(config, name)]

    def checkpoints(self, config: JobConfig) -> Dict[str, int]:
        """Progress value written after each enabled stage."""
        return compute_checkpoints(config.enabled_stages)


def compute_checkpoints(stage_names: List[str]) -> Dict[str, int]:
    """
    Rescale stage weights over `stage_names`.

    Values are strictly increasing and the last one is exactly 100.
    """
    ordered = [name for name in STAGE_ORDER if name in stage_names]
    if not ordered:
        return {}

    total = sum(STAGE_WEIGHTS[name] for name in ordered)
    checkpoints: Dict[str, int] = {}
    cumulative = 0
    previous = 0
    for name in ordered:
        cumulative += STAGE_WEIGHTS[name]
        value = round(cumulative * 100 / total)
        value = min(max(value, previous + 1), 100)
        checkpoints[name] = value
        previous = value
    checkpoints[ordered[-1]] = 100
    return checkpoints


def create_default_registry(
    config: Optional[PipelineConfig] = None, search_index: Optional[object] = None
) -> StageRegistry:
    """Registry holding the six default stages."""
    from jobforge.core.pipeline.stages import (
        InMemorySearchIndex,
        KeywordStage,
        LanguageStage,
        OCRStage,
        SearchIndexStage,
        SummaryStage,
        TextExtractionStage,
    )

    config = config or PipelineConfig()
    registry = StageRegistry()
    registry.register(TextExtractionStage())
    registry.register(OCRStage(language=config.ocr_language))
    registry.register(KeywordStage(max_keywords=config.max_keywords))
    registry.register(
        SummaryStage(
            max_sentences=config.summary_sentences,
            max_chars=config.summary_max_chars,
        )
    )
    registry.register(LanguageStage())
    registry.register(SearchIndexStage(search_index or InMemorySearchIndex()))
    return registry
