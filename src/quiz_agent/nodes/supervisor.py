"""
supervisor.py — Routing policy for the quiz workflow.

Deterministic rules first (first match wins):
  1. questions exist                                        → Finish
  2. retrieval variant, retrieval not yet run               → RetrieveDocuments
  3. retrieval variant, retrieval ran, no documents         → Finish (retrieval failed | no documents)
  4. no subtopics                                           → ExpandTopics
  5. subtopics, no questions, generation not yet run        → GenerateQuestions

Anything else is ambiguous (e.g. generation ran and produced nothing) and goes to a
structured LLM decision over the last few log entries. A failed fallback call
routes to Finish; it is never retried.

The Supervisor never enforces the step ceiling; the executor does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.errors import ProviderError, RoutingAmbiguityError
from quiz_agent.prompts import (
    NO_DOCUMENTS_MESSAGE,
    RETRIEVAL_FAILED_MESSAGE,
    SUPERVISOR_SYSTEM_PROMPT,
)
from quiz_agent.providers.base import TextGenerator
from quiz_agent.schemas import RoutingChoice, RoutingDecision, WorkflowState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteChoice:
    """One supervisor decision plus the reasoning that goes into the log."""
    decision: RoutingDecision
    reason: str
    source: str = "rules"           # "rules" | "llm" | "fallback"
    error: Optional[str] = None     # set when the fallback tier failed


def _invocations(state: WorkflowState, stage: str) -> int:
    return state.get("metrics", {}).get("stage_invocation_counts", {}).get(stage, 0)


def retrieval_failure(state: WorkflowState) -> Optional[str]:
    """Message of the latest retrieval stage error, or None when retrieval did not fail."""
    errors = [
        e for e in state.get("metrics", {}).get("errors", []) if e.get("stage") == "retrieve_documents"
    ]
    return errors[-1]["message"] if errors else None


def route_by_rules(state: WorkflowState) -> Optional[RouteChoice]:
    """Deterministic tier. Pure: the same state always yields the same choice."""
    questions = state.get("questions", [])
    subtopics = state.get("subtopics", [])

    if questions:
        return RouteChoice(
            RoutingDecision.FINISH,
            f"{len(questions)} question(s) generated; finishing",
        )

    if state.get("variant") == "retrieval":
        if _invocations(state, "retrieve_documents") == 0:
            return RouteChoice(
                RoutingDecision.RETRIEVE_DOCUMENTS,
                "Retrieval variant; fetching grounding documents first",
            )
        if not state.get("full_documents"):
            failure = retrieval_failure(state)
            if failure:
                return RouteChoice(
                    RoutingDecision.FINISH, RETRIEVAL_FAILED_MESSAGE.format(error=failure)
                )
            return RouteChoice(RoutingDecision.FINISH, NO_DOCUMENTS_MESSAGE)

    if not subtopics:
        return RouteChoice(RoutingDecision.EXPAND_TOPICS, "No subtopics yet")

    if _invocations(state, "generate_questions") == 0:
        return RouteChoice(
            RoutingDecision.GENERATE_QUESTIONS,
            f"{len(subtopics)} subtopic(s) ready; generating questions",
        )

    return None


def _format_recent_log(state: WorkflowState, window: int) -> str:
    entries = state.get("execution_log", [])[-window:] if window > 0 else []
    return "\n".join(f"- [{e.get('stage')}] {e.get('message')}" for e in entries) or "- (none)"


class Supervisor:
    """Default router: rule tier, then a constrained LLM decision for ambiguous states."""

    def __init__(self, generator: Optional[TextGenerator], cfg: WorkflowConfiguration) -> None:
        self.generator = generator
        self.cfg = cfg

    async def decide(self, state: WorkflowState) -> RouteChoice:
        choice = route_by_rules(state)
        if choice is not None:
            return choice

        try:
            return await self._ask_model(state)
        except RoutingAmbiguityError as exc:
            logger.warning("Supervisor fallback failed, finishing: %s", exc)
            return RouteChoice(
                RoutingDecision.FINISH,
                "Routing fallback unavailable; finishing",
                source="fallback",
                error=str(exc),
            )

    async def _ask_model(self, state: WorkflowState) -> RouteChoice:
        if self.generator is None:
            raise RoutingAmbiguityError("No text generator configured for routing")

        system_prompt = SUPERVISOR_SYSTEM_PROMPT.format(
            min_subtopics=self.cfg.min_subtopics,
            max_subtopics=self.cfg.max_subtopics,
            questions_per_subtopic=self.cfg.questions_per_subtopic,
            topic=state.get("input_topic", ""),
            subtopic_count=len(state.get("subtopics", [])),
            question_count=len(state.get("questions", [])),
            recent_log=_format_recent_log(state, self.cfg.supervisor_log_window),
        )
        try:
            result: RoutingChoice = await self.generator.generate(
                [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": "Decide the next step."},
                ],
                schema=RoutingChoice,
            )
        except ProviderError as exc:
            raise RoutingAmbiguityError(str(exc)) from exc

        decision = RoutingDecision(result.next)
        logger.info("Supervisor fallback chose %s", decision.value)
        return RouteChoice(decision, result.reasoning or f"Model chose {decision.value}", source="llm")
