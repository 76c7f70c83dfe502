"""Vaisu data models.

This module exports the core entities used throughout the application:
- CallRequest / CallResult / Message: LLM call values
- ModelMetadata: Provider-declared model limits
- TaskConfig: Model selection per task type
- Document / Section: Input documents
- AnalysisResult / AnalysisState / ProgressEvent: Pipeline outputs
"""

from vaisu.models.analysis import (
    AnalysisResult,
    AnalysisSnapshot,
    AnalysisStage,
    AnalysisState,
    Entity,
    ExecutiveSummary,
    KPI,
    ProgressEvent,
    Relationship,
    SignalAnalysis,
    TextSpan,
    VisualizationRecommendation,
)
from vaisu.models.document import Document, DocumentMetadata, Section
from vaisu.models.llm import CallRequest, CallResult, FinishReason, Message, ModelMetadata
from vaisu.models.task_config import TaskConfig, build_task_configs

__all__ = [
    "AnalysisResult",
    "AnalysisSnapshot",
    "AnalysisStage",
    "AnalysisState",
    "CallRequest",
    "CallResult",
    "Document",
    "DocumentMetadata",
    "Entity",
    "ExecutiveSummary",
    "FinishReason",
    "KPI",
    "Message",
    "ModelMetadata",
    "ProgressEvent",
    "Relationship",
    "Section",
    "SignalAnalysis",
    "TaskConfig",
    "TextSpan",
    "VisualizationRecommendation",
    "build_task_configs",
]
