"""Document analysis pipeline.

Runs the LLM tasks of one document analysis in dependency order:

1. priority-analysis: TLDR and executive summary, concurrently
2. early-results: partial snapshot published to the progress callback
3. detailed-analysis: entities and signals, concurrently
4. relationships: needs the entities of step 3
5. sections: one summary per section, concurrently
6. recommendations: needs signals, entity and relationship counts

TLDR and executive summary are essential: their failure aborts the run.
Every other stage is advisory and falls back to a fixed default.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from vaisu.config import PipelineConfig
from vaisu.llm.client import LLMClient
from vaisu.llm.decoder import DecodeFailure
from vaisu.llm.errors import ExhaustedCascadeError, InvalidResponseError, LLMError
from vaisu.llm.prompts import (
    build_recommendation_prompt,
    build_relationship_prompt,
    excerpt,
)
from vaisu.models.analysis import (
    AnalysisResult,
    AnalysisStage,
    AnalysisState,
    Entity,
    ExecutiveSummary,
    ProgressEvent,
    Relationship,
    SignalAnalysis,
    VisualizationRecommendation,
)
from vaisu.models.document import Document, Section
from vaisu.models.llm import CallResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

STAGE_PROGRESS = {
    AnalysisStage.INITIALIZATION: 0,
    AnalysisStage.PRIORITY_ANALYSIS: 10,
    AnalysisStage.EARLY_RESULTS: 30,
    AnalysisStage.DETAILED_ANALYSIS: 40,
    AnalysisStage.RELATIONSHIPS: 60,
    AnalysisStage.SECTIONS: 70,
    AnalysisStage.RECOMMENDATIONS: 85,
    AnalysisStage.COMPLETE: 100,
}

MAX_RECOMMENDATIONS = 5

DEFAULT_VIEW = VisualizationRecommendation(
    type="structured-view",
    score=1.0,
    rationale="Default view showing document structure with summaries",
)

DEFAULT_RECOMMENDATIONS = (
    VisualizationRecommendation(
        type="structured-view",
        score=1.0,
        rationale="Default view showing document structure",
    ),
    VisualizationRecommendation(
        type="mind-map",
        score=0.8,
        rationale="Good for hierarchical content",
    ),
)


class EssentialStageError(Exception):
    """An essential stage (TLDR or executive summary) failed.

    Attributes:
        stage: Task type of the failed stage
        reason: "cascade_exhausted" or "invalid_response"
        cause: Underlying LLM error
    """

    CASCADE_EXHAUSTED = "cascade_exhausted"
    INVALID_RESPONSE = "invalid_response"

    def __init__(self, stage: str, reason: str, cause: LLMError) -> None:
        self.stage = stage
        self.reason = reason
        self.cause = cause
        super().__init__(f"Essential stage '{stage}' failed ({reason}): {cause}")


class AnalysisPipeline:
    """Orchestrates the LLM tasks of a document analysis.

    One pipeline can analyze many documents; each run owns its own
    AnalysisState.
    """

    def __init__(self, client: LLMClient, options: PipelineConfig | None = None) -> None:
        """Initialize the analysis pipeline.

        Args:
            client: LLM client shared by every stage
            options: Pipeline settings (uses defaults if None)
        """
        self.client = client
        self.options = options or PipelineConfig()

    async def analyze_document(
        self,
        document: Document,
        on_progress: ProgressCallback | None = None,
    ) -> AnalysisResult:
        """Analyze a document.

        Args:
            document: Parsed document
            on_progress: Called with a ProgressEvent as each stage is reached

        Returns:
            AnalysisResult with every stage's output (advisory stages may
            hold their defaults)

        Raises:
            EssentialStageError: If the TLDR or executive summary fails
        """
        state = AnalysisState()
        logger.info(
            "Analyzing document %s",
            document.id,
            extra={"extra_data": {"document_id": document.id, "sections": len(document.sections)}},
        )
        self._emit(on_progress, state, AnalysisStage.INITIALIZATION, "Starting analysis...")

        # Stage 1: Essential summaries
        self._emit(
            on_progress, state, AnalysisStage.PRIORITY_ANALYSIS, "Generating summaries..."
        )
        tldr_outcome, summary_outcome = await asyncio.gather(
            self._generate_tldr(document.content),
            self._generate_executive_summary(document.content),
            return_exceptions=True,
        )
        for outcome in (tldr_outcome, summary_outcome):
            if isinstance(outcome, BaseException):
                logger.error("Analysis of %s aborted: %s", document.id, outcome)
                raise outcome
        state.tldr, tldr_tokens = tldr_outcome
        state.executive_summary, summary_tokens = summary_outcome
        state.tokens_used += tldr_tokens + summary_tokens

        self._emit(
            on_progress,
            state,
            AnalysisStage.EARLY_RESULTS,
            "Summaries ready",
            partial=True,
        )

        # Stage 2: Entities and signals
        self._emit(
            on_progress,
            state,
            AnalysisStage.DETAILED_ANALYSIS,
            "Extracting entities and signals...",
        )
        (entities, entity_tokens), (signals, signal_tokens) = await asyncio.gather(
            self._extract_entities(document.content),
            self._analyze_signals(document.content),
        )
        state.entities = entities
        state.signals = signals
        state.tokens_used += entity_tokens + signal_tokens

        # Stage 3: Relationships (depends on entities)
        self._emit(on_progress, state, AnalysisStage.RELATIONSHIPS, "Detecting relationships...")
        state.relationships, relationship_tokens = await self._detect_relationships(
            document.content, entities
        )
        state.tokens_used += relationship_tokens

        # Stage 4: Section summaries
        self._emit(on_progress, state, AnalysisStage.SECTIONS, "Summarizing sections...")
        section_outcomes = await asyncio.gather(
            *(self._summarize_section(section) for section in document.sections)
        )
        state.section_summaries = {}
        for section, (summary, section_tokens) in zip(
            document.sections, section_outcomes, strict=True
        ):
            state.section_summaries[section.id] = summary
            state.tokens_used += section_tokens

        # Stage 5: Recommendations
        self._emit(
            on_progress, state, AnalysisStage.RECOMMENDATIONS, "Recommending visualizations..."
        )
        state.recommendations, recommendation_tokens = await self._recommend_visualizations(
            document, signals, len(entities), len(state.relationships)
        )
        state.tokens_used += recommendation_tokens

        result = AnalysisResult(
            document_id=document.id,
            tldr=state.tldr,
            executive_summary=state.executive_summary,
            entities=tuple(state.entities),
            relationships=tuple(state.relationships),
            metrics=state.executive_summary.kpis,
            signals=state.signals,
            section_summaries=dict(state.section_summaries),
            recommendations=tuple(state.recommendations),
            tokens_used=state.tokens_used,
            completed_at=datetime.now(UTC),
        )

        self._emit(
            on_progress,
            state,
            AnalysisStage.COMPLETE,
            "Analysis complete",
            partial=True,
        )
        logger.info(
            "Analysis of %s complete: %d entities, %d relationships, %d tokens",
            document.id,
            len(result.entities),
            len(result.relationships),
            result.tokens_used,
            extra={"extra_data": {"document_id": document.id, "tokens_used": result.tokens_used}},
        )
        return result

    def _emit(
        self,
        on_progress: ProgressCallback | None,
        state: AnalysisState,
        stage: AnalysisStage,
        message: str,
        partial: bool = False,
    ) -> None:
        """Notify the progress callback; callback errors are logged and ignored."""
        logger.debug("Stage %s (%d%%): %s", stage.value, STAGE_PROGRESS[stage], message)
        if on_progress is None:
            return

        event = ProgressEvent(
            stage=stage,
            percent_complete=STAGE_PROGRESS[stage],
            message=message,
            partial=state.snapshot() if partial else None,
        )
        try:
            on_progress(event)
        except Exception as e:
            logger.warning("Progress callback failed at %s: %s", stage.value, e)

    async def _call(self, task_type: str, prompt: str) -> CallResult:
        return await self.client.call_with_fallback(
            task_type, prompt, retry_budget=self.options.retry_budget
        )

    # =========================================================================
    # Essential stages
    # =========================================================================

    async def _generate_tldr(self, text: str) -> tuple[str, int]:
        try:
            response = await self._call("tldr", excerpt(text, "tldr"))
        except ExhaustedCascadeError as e:
            raise EssentialStageError("tldr", EssentialStageError.CASCADE_EXHAUSTED, e) from e
        return response.content.strip(), response.tokens_used

    async def _generate_executive_summary(self, text: str) -> tuple[ExecutiveSummary, int]:
        try:
            response = await self._call("executiveSummary", excerpt(text, "executiveSummary"))
        except ExhaustedCascadeError as e:
            raise EssentialStageError(
                "executiveSummary", EssentialStageError.CASCADE_EXHAUSTED, e
            ) from e

        decoded = self.client.decode_json_response(response)
        if isinstance(decoded, DecodeFailure):
            error = decoded.to_error()
            raise EssentialStageError(
                "executiveSummary", EssentialStageError.INVALID_RESPONSE, error
            ) from error
        if not isinstance(decoded.value, dict):
            error = InvalidResponseError(response.content, "Expected a JSON object")
            raise EssentialStageError(
                "executiveSummary", EssentialStageError.INVALID_RESPONSE, error
            ) from error

        return ExecutiveSummary.from_dict(decoded.value), response.tokens_used

    # =========================================================================
    # Advisory stages
    # =========================================================================

    async def _extract_entities(self, text: str) -> tuple[list[Entity], int]:
        try:
            response = await self._call("entityExtraction", excerpt(text, "entityExtraction"))
            parsed = self.client.parse_json_response(response)
        except LLMError as e:
            logger.warning("Entity extraction failed, continuing without entities: %s", e)
            return [], 0

        items = _list_field(parsed, "entities")
        entities = [Entity.from_dict(item, i) for i, item in enumerate(items)]
        return entities, response.tokens_used

    async def _analyze_signals(self, text: str) -> tuple[SignalAnalysis, int]:
        try:
            response = await self._call("signalAnalysis", excerpt(text, "signalAnalysis"))
            parsed = self.client.parse_json_response(response)
        except LLMError as e:
            logger.warning("Signal analysis failed, using neutral defaults: %s", e)
            return SignalAnalysis(), 0

        if not isinstance(parsed, dict):
            logger.warning(
                "Signal analysis returned %s, using neutral defaults", type(parsed).__name__
            )
            return SignalAnalysis(), response.tokens_used

        return SignalAnalysis.from_dict(parsed), response.tokens_used

    async def _detect_relationships(
        self, text: str, entities: list[Entity]
    ) -> tuple[list[Relationship], int]:
        if not entities:
            logger.info("No entities extracted, skipping relationship detection")
            return [], 0

        try:
            response = await self._call(
                "relationshipDetection", build_relationship_prompt(text, entities)
            )
            parsed = self.client.parse_json_response(response)
        except LLMError as e:
            logger.warning("Relationship detection failed, continuing without relationships: %s", e)
            return [], 0

        items = _list_field(parsed, "relationships")
        relationships = [Relationship.from_dict(item, i) for i, item in enumerate(items)]
        return relationships, response.tokens_used

    async def _summarize_section(self, section: Section) -> tuple[str, int]:
        if len(section.content) <= self.options.section_min_chars:
            return section.content, 0

        try:
            response = await self._call(
                "sectionSummary", section.content[: self.options.section_max_chars]
            )
        except LLMError as e:
            logger.warning("Failed to summarize section %s: %s", section.id, e)
            return section.content[: self.options.section_fallback_chars] + "...", 0

        return response.content.strip(), response.tokens_used

    async def _recommend_visualizations(
        self,
        document: Document,
        signals: SignalAnalysis,
        entity_count: int,
        relationship_count: int,
    ) -> tuple[list[VisualizationRecommendation], int]:
        prompt = build_recommendation_prompt(document, signals, entity_count, relationship_count)
        try:
            response = await self._call("vizRecommendation", prompt)
            parsed = self.client.parse_json_response(response)
        except LLMError as e:
            logger.warning("Visualization recommendation failed, using defaults: %s", e)
            return list(DEFAULT_RECOMMENDATIONS), 0

        recommendations = [
            VisualizationRecommendation.from_dict(item)
            for item in _list_field(parsed, "recommendations")
        ]
        structured = [r for r in recommendations if r.type == DEFAULT_VIEW.type]
        others = [r for r in recommendations if r.type != DEFAULT_VIEW.type]
        ordered = (structured[:1] or [DEFAULT_VIEW]) + others
        return ordered[:MAX_RECOMMENDATIONS], response.tokens_used


def _list_field(parsed: Any, key: str) -> list[dict[str, Any]]:
    """Pull a list of objects out of {key: [...]} or a bare list."""
    if isinstance(parsed, dict):
        items = parsed.get(key)
    else:
        items = parsed
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]
