"""Vaisu - LLM orchestration for document analysis.

Vaisu turns a rate-limited, token-capped chat completion endpoint into a
dependable primitive for document analysis:
- Context budgeting: output ceilings sized from cached model metadata
- Continuation: truncated completions are resumed and stitched
- Fallback: every task has a primary and a fallback model with bounded retries
- Decoding: JSON is recovered from markdown fences and surrounding prose
- Pipeline: staged analysis with early partial results
"""

__version__ = "0.1.0"
__author__ = "Vaisu Contributors"
