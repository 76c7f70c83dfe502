"""LLM prompt templates for document analysis tasks.

System prompts are keyed by task type and paired with models in
vaisu.models.task_config. User prompts are built from document excerpts;
the excerpt lengths below bound how much text each task sees.
"""

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vaisu.models.analysis import Entity, SignalAnalysis
    from vaisu.models.document import Document


# Sent as the user turn of every continuation round
CONTINUE_PROMPT = (
    "Continue precisely from where you left off. "
    "Do not repeat any text already provided."
)

# Characters of document text given to each task
EXCERPT_LIMITS = {
    "tldr": 4000,
    "executiveSummary": 6000,
    "entityExtraction": 5000,
    "relationshipDetection": 4000,
    "signalAnalysis": 3000,
    "sectionSummary": 2000,
    "vizRecommendation": 1000,
}

VISUALIZATION_TYPES = (
    "structured-view",
    "mind-map",
    "flowchart",
    "knowledge-graph",
    "executive-dashboard",
    "timeline",
)

# =============================================================================
# System Prompts
# =============================================================================

SYSTEM_PROMPTS = {
    "tldr": (
        "Generate a concise TLDR summary of the following text. Focus on the main "
        "point in 2-3 sentences maximum. Be clear and direct."
    ),
    "executiveSummary": """Create an executive summary with the following structure:
1. headline: One compelling sentence capturing the essence
2. keyIdeas: Top 3 most important takeaways
3. kpis: Top 3 key metrics, each with label, value (number), unit and confidence (0-1)
4. risks: Top 3 potential challenges or concerns
5. opportunities: Top 3 potential benefits or advantages
6. callToAction: What should be done next

Return ONLY valid JSON with the keys headline, keyIdeas, kpis, risks,
opportunities and callToAction.""",
    "entityExtraction": """Extract ALL named entities from the text. Be comprehensive - extract people, organizations, locations, concepts, products, technologies, and key terms.

For each entity provide:
- id: unique identifier (e.g., "entity-1", "entity-2")
- text: the entity name/text
- type: one of: person, organization, location, concept, product, metric, date, technical
- importance: 0.0-1.0 (how central is this entity to the document)
- context: brief explanation of the entity's role/significance
- mentions: array with at least one mention object containing start, end, text

Return ONLY valid JSON in this exact format:
{
  "entities": [
    {
      "id": "entity-1",
      "text": "AWS",
      "type": "organization",
      "importance": 0.9,
      "context": "Cloud platform provider",
      "mentions": [{"start": 0, "end": 3, "text": "AWS"}]
    }
  ]
}

Extract at least 10-30 entities if the document is substantial. Be thorough.""",
    "relationshipDetection": """Analyze relationships between the provided entities based on the text.

You will be given a list of entities with their IDs. You MUST use the exact entity ID (e.g., "entity-1") in the source and target fields, NOT the entity text.

For each relationship provide:
- id: unique identifier (e.g., "rel-1", "rel-2")
- source: EXACT ID of the source entity
- target: EXACT ID of the target entity
- type: one of: causes, requires, part-of, relates-to, implements, uses, depends-on
- strength: 0.0-1.0 (how strong/important is this relationship)
- evidence: array with at least one evidence object containing start, end, text from the document

Return ONLY valid JSON in this exact format:
{
  "relationships": [
    {
      "id": "rel-1",
      "source": "entity-1",
      "target": "entity-2",
      "type": "uses",
      "strength": 0.8,
      "evidence": [{"start": 0, "end": 50, "text": "AWS uses Machine Learning for..."}]
    }
  ]
}

Extract at least 5-20 relationships if entities are connected. Focus on meaningful connections.""",
    "sectionSummary": (
        "Summarize this section in 2-3 sentences. Extract key highlights and "
        "important keywords. Be concise and informative."
    ),
    "signalAnalysis": """Analyze the text for the following signals (score each 0-1):
- structural: presence of headings, lists, clear organization
- process: workflow language, sequential steps, transitions
- quantitative: numbers, metrics, data, statistics
- technical: code, APIs, technical terminology
- argumentative: claims, evidence, reasoning
- temporal: dates, timelines, chronological information
Return ONLY a JSON object with these six scores.""",
    "vizRecommendation": f"""Recommend the top 3-5 most appropriate visualizations for this document.
Available types: {", ".join(VISUALIZATION_TYPES)}.
For each recommendation include: type, score (0-1), and rationale (one sentence).
Return ONLY valid JSON in this format: {{"recommendations": [...]}}""",
    "kpiExtraction": """Extract key performance indicators (KPIs) from the text.
For each KPI include: label, value (number), unit, trend (up/down/stable if mentioned), and confidence (0-1).
Deduplicate similar metrics. Return as JSON array.""",
    "glossary": """Extract keywords and acronyms with context-aware definitions.
Analyze the domain and provide definitions appropriate to that context.
Return as JSON array with: term, definition, domain, confidence.""",
    "qa": (
        "Answer questions about the document content. Be helpful, accurate, and "
        "concise. Cite specific parts of the text when relevant."
    ),
    "mindMapGeneration": """Analyze the document and create a hierarchical mind map structure with 3-5 levels of depth.

- Root node: Main topic/title
- Level 1: Major themes or sections (3-7 nodes)
- Level 2: Key concepts under each theme (2-5 nodes per parent)
- Level 3+: Supporting details (1-3 nodes per parent)

For each node include: id, label (2-5 words), subtitle (at most 40 characters),
icon (single emoji), summary (1-2 sentences), detailedExplanation (2-4 sentences),
children (array of nodes) and importance (0.3-1.0).

Return ONLY valid JSON in this format: {"nodes": [...]}""",
}


def get_system_prompt(task_type: str) -> str:
    """Get the system prompt for a task type.

    Args:
        task_type: Task type name (e.g., "tldr")

    Returns:
        System prompt string

    Raises:
        KeyError: If no prompt is defined for the task type
    """
    return SYSTEM_PROMPTS[task_type]


def excerpt(text: str, task_type: str) -> str:
    """Cut document text down to the excerpt length of a task."""
    return text[: EXCERPT_LIMITS[task_type]]


# =============================================================================
# User Prompt Builders
# =============================================================================


def build_relationship_prompt(text: str, entities: list["Entity"]) -> str:
    """Build the relationship detection prompt.

    Entities are listed as "id: text" so the model can reference ids.

    Args:
        text: Full document text
        entities: Entities extracted earlier in the same run

    Returns:
        Prompt text
    """
    entity_lines = "\n".join(f"- {e.id}: {e.text}" for e in entities)
    return (
        f"Text: {excerpt(text, 'relationshipDetection')}\n\n"
        f"Entities:\n{entity_lines}"
    )


def build_recommendation_prompt(
    document: "Document",
    signals: "SignalAnalysis",
    entity_count: int,
    relationship_count: int,
) -> str:
    """Build the visualization recommendation prompt.

    Args:
        document: Document under analysis
        signals: Signal scores from the detailed analysis stage
        entity_count: Number of extracted entities
        relationship_count: Number of detected relationships

    Returns:
        Prompt text
    """
    stats: dict[str, Any] = {
        "Word count": document.metadata.word_count,
        "Sections": len(document.sections),
        "Entities": entity_count,
        "Relationships": relationship_count,
        "Signals": json.dumps(signals.to_dict()),
    }
    stats_str = "\n".join(f"- {key}: {value}" for key, value in stats.items())

    return (
        f"Document analysis:\n{stats_str}\n\n"
        f"Sample text:\n{excerpt(document.content, 'vizRecommendation')}"
    )
