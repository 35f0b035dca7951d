"""
errors.py — Exception taxonomy for the quiz workflow.

  ValidationError            bad caller input; the only error that reaches the caller
  ProviderError              embedding / generation / search / store failure
  StructuralValidationError  well-formed provider output that breaks a content rule
  RoutingAmbiguityError      the supervisor's LLM fallback could not produce a decision
"""

from __future__ import annotations


class QuizAgentError(Exception):
    """Base class for every error raised by quiz_agent."""


class ValidationError(QuizAgentError):
    """Raised before the graph runs when the topic or query is unusable."""


class ProviderError(QuizAgentError):
    """A capability provider call failed (auth, quota, network, unparseable output)."""

    def __init__(self, message: str, provider: str = "") -> None:
        super().__init__(message)
        self.provider = provider


class StructuralValidationError(QuizAgentError):
    """Provider output parsed, but violates a content rule (counts, lengths, keys)."""


class RoutingAmbiguityError(QuizAgentError):
    """The supervisor fallback call failed; callers route to Finish."""
