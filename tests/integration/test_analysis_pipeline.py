"""Integration tests for the analysis pipeline.

The pipeline runs against a real LLMClient whose transport answers each task
with canned model output.
"""

import json

import pytest

from conftest import (
    PRIMARY,
    FakeTransport,
    build_client,
    canned_handler,
    reply,
    transport_failure,
)
from vaisu.config import PipelineConfig
from vaisu.llm.errors import ExhaustedCascadeError, InvalidResponseError
from vaisu.models.analysis import AnalysisStage, ProgressEvent, SignalAnalysis
from vaisu.models.document import Document
from vaisu.models.llm import CallRequest, CallResult
from vaisu.pipeline import (
    DEFAULT_RECOMMENDATIONS,
    DEFAULT_VIEW,
    MAX_RECOMMENDATIONS,
    STAGE_PROGRESS,
    AnalysisPipeline,
    EssentialStageError,
)


def failing(request: CallRequest) -> CallResult:
    raise transport_failure(f"{request.model} is down")


def make_pipeline(
    transport: FakeTransport, options: PipelineConfig | None = None
) -> AnalysisPipeline:
    return AnalysisPipeline(build_client(transport), options)


class TestHappyPath:
    """Tests for a run where every task succeeds."""

    @pytest.mark.asyncio
    async def test_full_result(self, sample_document: Document) -> None:
        """Test every result field on the sample document."""
        transport = FakeTransport(canned_handler())

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert result.document_id == sample_document.id
        assert result.tldr == "Billing moves to AWS in three phases."
        assert result.executive_summary.headline == "Billing moves to AWS in nine months"
        assert [k.label for k in result.metrics] == ["Duration"]
        assert [e.text for e in result.entities] == ["AWS", "billing platform"]
        assert [(r.source, r.target) for r in result.relationships] == [("entity-2", "entity-1")]
        assert result.signals.structural == 0.9
        assert [r.type for r in result.recommendations] == [
            "structured-view",
            "timeline",
            "mind-map",
        ]
        assert result.recommendations[0] == DEFAULT_VIEW

    @pytest.mark.asyncio
    async def test_section_summaries(self, sample_document: Document) -> None:
        """Test that only sections over 100 characters are sent to the model."""
        transport = FakeTransport(canned_handler())

        result = await make_pipeline(transport).analyze_document(sample_document)

        titles = {s.id: s.title for s in sample_document.sections}
        summaries = {titles[k]: v for k, v in result.section_summaries.items()}
        assert summaries == {
            "Cloud Migration Plan": "",
            "Background": "A short section summary.",
            "Approach": "A short section summary.",
            "Notes": "Budget review in Q3.",
        }
        assert transport.tasks().count("sectionSummary") == 2

    @pytest.mark.asyncio
    async def test_stage_order_and_tokens(self, sample_document: Document) -> None:
        """Test that stages run in dependency order and tokens are summed."""
        transport = FakeTransport(canned_handler())

        result = await make_pipeline(transport).analyze_document(sample_document)

        tasks = transport.tasks()
        assert set(tasks[0:2]) == {"tldr", "executiveSummary"}
        assert set(tasks[2:4]) == {"entityExtraction", "signalAnalysis"}
        assert tasks[4] == "relationshipDetection"
        assert tasks[5:7] == ["sectionSummary", "sectionSummary"]
        assert tasks[7] == "vizRecommendation"
        assert result.tokens_used == 10 * len(tasks)

    @pytest.mark.asyncio
    async def test_relationship_prompt_lists_entities(self, sample_document: Document) -> None:
        """Test that relationship detection sees the extracted entity ids."""
        transport = FakeTransport(canned_handler())

        await make_pipeline(transport).analyze_document(sample_document)

        prompt = next(
            request.messages[-1].content
            for task, request in zip(transport.tasks(), transport.requests, strict=True)
            if task == "relationshipDetection"
        )
        assert "- entity-1: AWS" in prompt
        assert "- entity-2: billing platform" in prompt

    @pytest.mark.asyncio
    async def test_short_document(self, short_document: Document) -> None:
        """Test a three-sentence document without headings."""
        transport = FakeTransport(canned_handler())

        result = await make_pipeline(transport).analyze_document(short_document)

        assert result.tldr
        assert result.executive_summary.headline
        assert result.section_summaries == {"section-0": short_document.content}
        assert "sectionSummary" not in transport.tasks()

    @pytest.mark.asyncio
    async def test_result_serializes(self, sample_document: Document) -> None:
        """Test that the result is JSON serializable."""
        transport = FakeTransport(canned_handler())

        result = await make_pipeline(transport).analyze_document(sample_document)

        data = json.loads(json.dumps(result.to_dict()))
        assert data["documentId"] == sample_document.id
        assert data["executiveSummary"]["keyIdeas"][0] == "Hardware support ends"


class TestProgress:
    """Tests for progress notifications."""

    @pytest.mark.asyncio
    async def test_events_in_order(self, sample_document: Document) -> None:
        """Test the stage sequence and percentages."""
        events: list[ProgressEvent] = []
        transport = FakeTransport(canned_handler())

        await make_pipeline(transport).analyze_document(sample_document, events.append)

        assert [e.stage for e in events] == list(AnalysisStage)
        assert [e.percent_complete for e in events] == [0, 10, 30, 40, 60, 70, 85, 100]
        assert [e.percent_complete for e in events] == [STAGE_PROGRESS[s] for s in AnalysisStage]

    @pytest.mark.asyncio
    async def test_early_results_partial(self, sample_document: Document) -> None:
        """Test that early results carry only the summaries."""
        events: list[ProgressEvent] = []
        transport = FakeTransport(canned_handler())

        await make_pipeline(transport).analyze_document(sample_document, events.append)

        early = next(e for e in events if e.stage is AnalysisStage.EARLY_RESULTS)
        assert early.partial is not None
        assert early.partial.tldr == "Billing moves to AWS in three phases."
        assert early.partial.executive_summary is not None
        assert early.partial.entities is None
        assert early.partial.recommendations is None
        assert set(early.to_dict()["partialAnalysis"]) == {"tldr", "executiveSummary"}

    @pytest.mark.asyncio
    async def test_complete_partial_is_full(self, sample_document: Document) -> None:
        """Test that the final event carries every field."""
        events: list[ProgressEvent] = []
        transport = FakeTransport(canned_handler())

        await make_pipeline(transport).analyze_document(sample_document, events.append)

        final = events[-1]
        assert final.stage is AnalysisStage.COMPLETE
        assert final.partial is not None
        assert final.partial.recommendations is not None
        assert len(final.partial.entities or ()) == 2

    @pytest.mark.asyncio
    async def test_only_snapshot_stages_carry_partials(self, sample_document: Document) -> None:
        """Test that other stages have no partial result."""
        events: list[ProgressEvent] = []
        transport = FakeTransport(canned_handler())

        await make_pipeline(transport).analyze_document(sample_document, events.append)

        with_partial = [e.stage for e in events if e.partial is not None]
        assert with_partial == [AnalysisStage.EARLY_RESULTS, AnalysisStage.COMPLETE]

    @pytest.mark.asyncio
    async def test_raising_callback_ignored(self, sample_document: Document) -> None:
        """Test that a failing progress callback does not stop the analysis."""
        calls = 0

        def broken(event: ProgressEvent) -> None:
            nonlocal calls
            calls += 1
            raise RuntimeError("display closed")

        transport = FakeTransport(canned_handler())

        result = await make_pipeline(transport).analyze_document(sample_document, broken)

        assert result.tldr
        assert calls == len(AnalysisStage)


class TestAdvisoryFailures:
    """Tests for stages that fall back to defaults."""

    @pytest.mark.asyncio
    async def test_entity_failure(self, sample_document: Document) -> None:
        """Test that failed extraction yields no entities and skips relationships."""
        transport = FakeTransport(canned_handler({"entityExtraction": failing}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert result.entities == ()
        assert result.relationships == ()
        assert "relationshipDetection" not in transport.tasks()
        assert transport.tasks().count("entityExtraction") == 4

    @pytest.mark.asyncio
    async def test_retry_budget_option(self, sample_document: Document) -> None:
        """Test that the configured retry budget applies to every task."""
        transport = FakeTransport(canned_handler({"entityExtraction": failing}))

        await make_pipeline(transport, PipelineConfig(retry_budget=0)).analyze_document(
            sample_document
        )

        assert transport.tasks().count("entityExtraction") == 1

    @pytest.mark.asyncio
    async def test_entity_garbage(self, sample_document: Document) -> None:
        """Test that undecodable entity output yields no entities."""
        transport = FakeTransport(canned_handler({"entityExtraction": "no entities, sorry"}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert result.entities == ()
        assert "relationshipDetection" not in transport.tasks()

    @pytest.mark.asyncio
    async def test_bare_list_of_entities(self, sample_document: Document) -> None:
        """Test that a bare JSON list of entities is accepted."""
        bare = json.dumps([{"id": "entity-1", "text": "AWS", "type": "organization"}])
        transport = FakeTransport(canned_handler({"entityExtraction": bare}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert [e.text for e in result.entities] == ["AWS"]

    @pytest.mark.asyncio
    async def test_non_finite_offsets_default_to_zero(self, sample_document: Document) -> None:
        """Test that Infinity and NaN offsets do not abort the analysis."""
        entities = (
            '{"entities": [{"id": "e1", "text": "AWS", "importance": 1e999, '
            '"mentions": [{"start": "Infinity", "end": 3, "text": "AWS"}]}]}'
        )
        relationships = (
            '{"relationships": [{"source": "e1", "target": "e1", "strength": "NaN", '
            '"evidence": [{"start": "NaN", "end": 1e999, "text": "AWS"}]}]}'
        )
        transport = FakeTransport(
            canned_handler(
                {"entityExtraction": entities, "relationshipDetection": relationships}
            )
        )

        result = await make_pipeline(transport).analyze_document(sample_document)

        (entity,) = result.entities
        assert entity.importance == 0.0
        assert (entity.mentions[0].start, entity.mentions[0].end) == (0, 3)
        (relationship,) = result.relationships
        assert relationship.strength == 0.0
        assert (relationship.evidence[0].start, relationship.evidence[0].end) == (0, 0)
        json.dumps(result.to_dict(), allow_nan=False)

    @pytest.mark.asyncio
    async def test_relationship_failure(self, sample_document: Document) -> None:
        """Test that failed relationship detection yields no relationships."""
        transport = FakeTransport(canned_handler({"relationshipDetection": failing}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert len(result.entities) == 2
        assert result.relationships == ()

    @pytest.mark.asyncio
    async def test_signal_failure(self, sample_document: Document) -> None:
        """Test neutral signal defaults."""
        transport = FakeTransport(canned_handler({"signalAnalysis": "not json"}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert result.signals == SignalAnalysis()
        assert result.signals.structural == 0.5
        assert result.signals.technical == 0.2

    @pytest.mark.asyncio
    async def test_signal_wrong_shape(self, sample_document: Document) -> None:
        """Test that a non-object signal response uses the defaults."""
        transport = FakeTransport(canned_handler({"signalAnalysis": "[0.1, 0.2]"}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert result.signals == SignalAnalysis()

    @pytest.mark.asyncio
    async def test_section_failure(self, sample_document: Document) -> None:
        """Test that a failed section summary keeps the start of the section."""
        transport = FakeTransport(canned_handler({"sectionSummary": failing}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        background = next(s for s in sample_document.sections if s.title == "Background")
        assert result.section_summaries[background.id] == background.content[:200] + "..."

    @pytest.mark.asyncio
    async def test_recommendation_failure(self, sample_document: Document) -> None:
        """Test the default recommendations."""
        transport = FakeTransport(canned_handler({"vizRecommendation": failing}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert result.recommendations == DEFAULT_RECOMMENDATIONS
        assert [(r.type, r.score) for r in result.recommendations] == [
            ("structured-view", 1.0),
            ("mind-map", 0.8),
        ]

    @pytest.mark.asyncio
    async def test_tokens_exclude_failed_calls(self, sample_document: Document) -> None:
        """Test that failed attempts add no tokens."""
        transport = FakeTransport(canned_handler({"vizRecommendation": failing}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        successful = [t for t in transport.tasks() if t != "vizRecommendation"]
        assert result.tokens_used == 10 * len(successful)


class TestRecommendationOrdering:
    """Tests for the structured-view rule and the cap."""

    @pytest.mark.asyncio
    async def test_structured_view_moved_first_and_capped(
        self, sample_document: Document
    ) -> None:
        """Test an over-long list with structured-view in the middle."""
        types = [
            "timeline",
            "flowchart",
            "mind-map",
            "structured-view",
            "knowledge-graph",
            "executive-dashboard",
            "timeline",
        ]
        payload = json.dumps(
            {"recommendations": [{"type": t, "score": 0.5, "rationale": t} for t in types]}
        )
        transport = FakeTransport(canned_handler({"vizRecommendation": payload}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert len(result.recommendations) == MAX_RECOMMENDATIONS
        assert [r.type for r in result.recommendations] == [
            "structured-view",
            "timeline",
            "flowchart",
            "mind-map",
            "knowledge-graph",
        ]
        assert result.recommendations[0].rationale == "structured-view"

    @pytest.mark.asyncio
    async def test_empty_list_gets_default_view(self, sample_document: Document) -> None:
        """Test that an empty recommendation list still has structured-view."""
        transport = FakeTransport(
            canned_handler({"vizRecommendation": '{"recommendations": []}'})
        )

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert result.recommendations == (DEFAULT_VIEW,)


class TestEssentialFailures:
    """Tests for stages whose failure aborts the analysis."""

    @pytest.mark.asyncio
    async def test_tldr_cascade_exhausted(self, sample_document: Document) -> None:
        """Test that an exhausted TLDR cascade aborts the run."""
        events: list[ProgressEvent] = []
        transport = FakeTransport(canned_handler({"tldr": failing}))

        with pytest.raises(EssentialStageError) as exc_info:
            await make_pipeline(transport).analyze_document(sample_document, events.append)

        error = exc_info.value
        assert error.stage == "tldr"
        assert error.reason == EssentialStageError.CASCADE_EXHAUSTED
        assert isinstance(error.cause, ExhaustedCascadeError)
        assert len(error.cause.attempts) == 4
        assert AnalysisStage.EARLY_RESULTS not in [e.stage for e in events]
        assert "entityExtraction" not in transport.tasks()

    @pytest.mark.asyncio
    async def test_executive_summary_cascade_exhausted(
        self, sample_document: Document
    ) -> None:
        """Test that an exhausted executive summary cascade aborts the run."""
        transport = FakeTransport(canned_handler({"executiveSummary": failing}))

        with pytest.raises(EssentialStageError) as exc_info:
            await make_pipeline(transport).analyze_document(sample_document)

        assert exc_info.value.stage == "executiveSummary"
        assert exc_info.value.reason == "cascade_exhausted"

    @pytest.mark.asyncio
    async def test_executive_summary_invalid_json(self, sample_document: Document) -> None:
        """Test that undecodable executive summary output aborts the run."""
        transport = FakeTransport(
            canned_handler({"executiveSummary": "I'm sorry, I can't summarize this."})
        )

        with pytest.raises(EssentialStageError) as exc_info:
            await make_pipeline(transport).analyze_document(sample_document)

        assert exc_info.value.stage == "executiveSummary"
        assert exc_info.value.reason == EssentialStageError.INVALID_RESPONSE
        assert isinstance(exc_info.value.cause, InvalidResponseError)

    @pytest.mark.asyncio
    async def test_executive_summary_not_an_object(self, sample_document: Document) -> None:
        """Test that a JSON list is rejected as an executive summary."""
        transport = FakeTransport(canned_handler({"executiveSummary": '["a", "b"]'}))

        with pytest.raises(EssentialStageError) as exc_info:
            await make_pipeline(transport).analyze_document(sample_document)

        assert exc_info.value.reason == EssentialStageError.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_fallback_rescues_essential_stage(self, sample_document: Document) -> None:
        """Test that a fallback success keeps the run alive."""

        def primary_down(request: CallRequest) -> CallResult:
            if request.model == PRIMARY:
                raise transport_failure()
            return reply("Fallback TLDR.", model=request.model)

        transport = FakeTransport(canned_handler({"tldr": primary_down}))

        result = await make_pipeline(transport).analyze_document(sample_document)

        assert result.tldr == "Fallback TLDR."
