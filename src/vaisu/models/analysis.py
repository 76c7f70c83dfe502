"""Analysis result entities.

This module contains entities produced by the analysis pipeline:
- ExecutiveSummary / KPI: Structured executive summary
- Entity / Relationship / TextSpan: Entity graph
- SignalAnalysis: Six-axis document signal scores
- VisualizationRecommendation: Suggested visualizations
- AnalysisState: Per-run accumulator (owned by one pipeline run)
- AnalysisSnapshot: Immutable copy of the state carried by progress events
- AnalysisResult: Final result returned to the caller
- ProgressEvent / AnalysisStage: Progress notifications

from_dict() methods accept the camelCase JSON the model returns and tolerate
missing keys; to_dict() emits the same camelCase shape.
"""

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


def _as_float(value: Any, default: float = 0.0) -> float:
    """Coerce a JSON value to a finite float, falling back to a default."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def _as_str_list(value: Any) -> tuple[str, ...]:
    """Coerce a JSON value to a tuple of strings."""
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value if item is not None)


class AnalysisStage(Enum):
    """Named pipeline stages in execution order."""

    INITIALIZATION = "initialization"
    PRIORITY_ANALYSIS = "priority-analysis"
    EARLY_RESULTS = "early-results"
    DETAILED_ANALYSIS = "detailed-analysis"
    RELATIONSHIPS = "relationships"
    SECTIONS = "sections"
    RECOMMENDATIONS = "recommendations"
    COMPLETE = "complete"


@dataclass(frozen=True)
class TextSpan:
    """A span of document text.

    Attributes:
        start: Start offset
        end: End offset
        text: Quoted text
    """

    start: int
    end: int
    text: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TextSpan":
        """Create TextSpan from dictionary."""
        return cls(
            start=int(_as_float(data.get("start"))),
            end=int(_as_float(data.get("end"))),
            text=str(data.get("text", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"start": self.start, "end": self.end, "text": self.text}


def _spans(value: Any) -> tuple[TextSpan, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(TextSpan.from_dict(item) for item in value if isinstance(item, dict))


@dataclass(frozen=True)
class KPI:
    """Key performance indicator from the executive summary."""

    id: str
    label: str
    value: float
    unit: str = ""
    trend: str | None = None
    confidence: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> "KPI":
        """Create KPI from dictionary."""
        trend = data.get("trend")
        return cls(
            id=str(data.get("id") or f"kpi-{index + 1}"),
            label=str(data.get("label", "")),
            value=_as_float(data.get("value")),
            unit=str(data.get("unit") or ""),
            trend=trend if trend in {"up", "down", "stable"} else None,
            confidence=_as_float(data.get("confidence")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "label": self.label,
            "value": self.value,
            "unit": self.unit,
            "trend": self.trend,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ExecutiveSummary:
    """Structured executive summary.

    Attributes:
        headline: One-sentence essence of the document
        key_ideas: Most important takeaways
        kpis: Key metrics
        risks: Challenges or concerns
        opportunities: Benefits or advantages
        call_to_action: Suggested next step
    """

    headline: str = "Document Summary"
    key_ideas: tuple[str, ...] = ()
    kpis: tuple[KPI, ...] = ()
    risks: tuple[str, ...] = ()
    opportunities: tuple[str, ...] = ()
    call_to_action: str = "Review the document for details"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutiveSummary":
        """Create ExecutiveSummary from the model's JSON, filling missing fields."""
        kpis = data.get("kpis") if isinstance(data.get("kpis"), list) else []
        return cls(
            headline=str(data.get("headline") or cls.headline),
            key_ideas=_as_str_list(data.get("keyIdeas", data.get("key_ideas"))),
            kpis=tuple(
                KPI.from_dict(item, i) for i, item in enumerate(kpis) if isinstance(item, dict)
            ),
            risks=_as_str_list(data.get("risks")),
            opportunities=_as_str_list(data.get("opportunities")),
            call_to_action=str(
                data.get("callToAction") or data.get("call_to_action") or cls.call_to_action
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "headline": self.headline,
            "keyIdeas": list(self.key_ideas),
            "kpis": [k.to_dict() for k in self.kpis],
            "risks": list(self.risks),
            "opportunities": list(self.opportunities),
            "callToAction": self.call_to_action,
        }


@dataclass(frozen=True)
class Entity:
    """Named entity extracted from the document."""

    id: str
    text: str
    type: str = "concept"
    importance: float = 0.0
    context: str = ""
    mentions: tuple[TextSpan, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> "Entity":
        """Create Entity from dictionary."""
        return cls(
            id=str(data.get("id") or f"entity-{index + 1}"),
            text=str(data.get("text", "")),
            type=str(data.get("type") or "concept"),
            importance=_as_float(data.get("importance")),
            context=str(data.get("context") or ""),
            mentions=_spans(data.get("mentions")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type,
            "importance": self.importance,
            "context": self.context,
            "mentions": [m.to_dict() for m in self.mentions],
        }


@dataclass(frozen=True)
class Relationship:
    """Directed relationship between two entities (by entity id)."""

    id: str
    source: str
    target: str
    type: str = "relates-to"
    strength: float = 0.0
    evidence: tuple[TextSpan, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> "Relationship":
        """Create Relationship from dictionary."""
        return cls(
            id=str(data.get("id") or f"rel-{index + 1}"),
            source=str(data.get("source", "")),
            target=str(data.get("target", "")),
            type=str(data.get("type") or "relates-to"),
            strength=_as_float(data.get("strength")),
            evidence=_spans(data.get("evidence")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type,
            "strength": self.strength,
            "evidence": [e.to_dict() for e in self.evidence],
        }


@dataclass(frozen=True)
class SignalAnalysis:
    """Document signal scores, each 0-1.

    Defaults are the neutral scores used when signal analysis fails.
    """

    structural: float = 0.5
    process: float = 0.3
    quantitative: float = 0.3
    technical: float = 0.2
    argumentative: float = 0.3
    temporal: float = 0.2

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SignalAnalysis":
        """Create SignalAnalysis from dictionary, keeping defaults for missing axes."""
        defaults = cls()
        return cls(
            **{
                axis: _as_float(data.get(axis), getattr(defaults, axis))
                for axis in cls.__dataclass_fields__
            }
        )

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary for serialization."""
        return {axis: getattr(self, axis) for axis in self.__dataclass_fields__}


@dataclass(frozen=True)
class VisualizationRecommendation:
    """Suggested visualization with a score and rationale."""

    type: str
    score: float
    rationale: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VisualizationRecommendation":
        """Create VisualizationRecommendation from dictionary."""
        return cls(
            type=str(data.get("type", "")),
            score=_as_float(data.get("score")),
            rationale=str(data.get("rationale") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"type": self.type, "score": self.score, "rationale": self.rationale}


@dataclass(frozen=True)
class AnalysisSnapshot:
    """Immutable view of an AnalysisState at one point in time."""

    tldr: str | None = None
    executive_summary: ExecutiveSummary | None = None
    entities: tuple[Entity, ...] | None = None
    relationships: tuple[Relationship, ...] | None = None
    signals: SignalAnalysis | None = None
    section_summaries: Mapping[str, str] | None = None
    recommendations: tuple[VisualizationRecommendation, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert the populated fields to a dictionary."""
        data: dict[str, Any] = {}
        if self.tldr is not None:
            data["tldr"] = self.tldr
        if self.executive_summary is not None:
            data["executiveSummary"] = self.executive_summary.to_dict()
        if self.entities is not None:
            data["entities"] = [e.to_dict() for e in self.entities]
        if self.relationships is not None:
            data["relationships"] = [r.to_dict() for r in self.relationships]
        if self.signals is not None:
            data["signals"] = self.signals.to_dict()
        if self.section_summaries is not None:
            data["sectionSummaries"] = dict(self.section_summaries)
        if self.recommendations is not None:
            data["recommendations"] = [r.to_dict() for r in self.recommendations]
        return data


@dataclass
class AnalysisState:
    """Intermediate results of one pipeline run.

    Fields are None until their stage completes. Concurrent branches of a
    stage return values that are merged here after the join, one field each.
    """

    tldr: str | None = None
    executive_summary: ExecutiveSummary | None = None
    entities: list[Entity] | None = None
    relationships: list[Relationship] | None = None
    signals: SignalAnalysis | None = None
    section_summaries: dict[str, str] | None = None
    recommendations: list[VisualizationRecommendation] | None = None
    tokens_used: int = 0

    def snapshot(self) -> AnalysisSnapshot:
        """Return an immutable copy of the populated fields."""
        return AnalysisSnapshot(
            tldr=self.tldr,
            executive_summary=self.executive_summary,
            entities=tuple(self.entities) if self.entities is not None else None,
            relationships=(
                tuple(self.relationships) if self.relationships is not None else None
            ),
            signals=self.signals,
            section_summaries=(
                MappingProxyType(dict(self.section_summaries))
                if self.section_summaries is not None
                else None
            ),
            recommendations=(
                tuple(self.recommendations) if self.recommendations is not None else None
            ),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """Complete analysis of one document.

    Attributes:
        document_id: Analyzed document id
        tldr: Short summary
        executive_summary: Structured summary
        entities: Extracted entities (empty when extraction failed)
        relationships: Relationships between entities
        metrics: KPIs surfaced from the executive summary
        signals: Signal scores
        section_summaries: Summary per section id
        recommendations: Visualization recommendations
        tokens_used: Tokens reported by the provider across all calls
        completed_at: Completion timestamp (UTC)
    """

    document_id: str
    tldr: str
    executive_summary: ExecutiveSummary
    entities: tuple[Entity, ...] = ()
    relationships: tuple[Relationship, ...] = ()
    metrics: tuple[KPI, ...] = ()
    signals: SignalAnalysis = field(default_factory=SignalAnalysis)
    section_summaries: Mapping[str, str] = field(default_factory=dict)
    recommendations: tuple[VisualizationRecommendation, ...] = ()
    tokens_used: int = 0
    completed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "documentId": self.document_id,
            "tldr": self.tldr,
            "executiveSummary": self.executive_summary.to_dict(),
            "entities": [e.to_dict() for e in self.entities],
            "relationships": [r.to_dict() for r in self.relationships],
            "metrics": [m.to_dict() for m in self.metrics],
            "signals": self.signals.to_dict(),
            "sectionSummaries": dict(self.section_summaries),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "tokensUsed": self.tokens_used,
            "completedAt": self.completed_at.isoformat(),
        }


@dataclass(frozen=True)
class ProgressEvent:
    """One-way progress notification.

    Attributes:
        stage: Stage that was reached
        percent_complete: 0-100
        message: Human-readable status
        partial: Snapshot of results so far, when the stage publishes one
    """

    stage: AnalysisStage
    percent_complete: int
    message: str
    partial: AnalysisSnapshot | None = None

    def __post_init__(self) -> None:
        """Validate the percentage."""
        if not 0 <= self.percent_complete <= 100:
            raise ValueError(
                f"percent_complete must be between 0 and 100. Got: {self.percent_complete}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "step": self.stage.value,
            "progress": self.percent_complete,
            "message": self.message,
            "partialAnalysis": self.partial.to_dict() if self.partial else None,
        }
