"""
main_graph.py — Graph executor for the quiz workflow.

Graph flow:
  START
    → supervisor            (router decision + step ceiling; Command → stage | END)
    → retrieve_documents    (retrieval variant only)     → supervisor
    → expand_topics                                       → supervisor
    → generate_questions                                  → supervisor
    ...
    → END                   (Finish)

Every stage node is wrapped so that:
  - its invocation is counted in metrics.stage_invocation_counts
  - an exception becomes a metrics.errors entry and an empty patch
The supervisor node counts turns in step_count; on the max_steps-th turn any
non-Finish decision is overridden and a recursion-limit warning is recorded.

Capabilities are injected per build; nothing is constructed at import time.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Awaitable, Callable, Literal, Optional

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, StateGraph
from langgraph.types import Command

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.errors import ValidationError
from quiz_agent.logging_config import correlation_id
from quiz_agent.nodes.question_generator import generate_questions
from quiz_agent.nodes.retriever import retrieve_documents
from quiz_agent.nodes.supervisor import RouteChoice, Supervisor, retrieval_failure
from quiz_agent.nodes.topic_expander import expand_topics
from quiz_agent.prompts import NO_DOCUMENTS_MESSAGE, RETRIEVAL_FAILED_MESSAGE
from quiz_agent.providers.base import Providers
from quiz_agent.schemas import (
    STAGE_NODES,
    QuizQuestion,
    RoutingDecision,
    Variant,
    WorkflowInput,
    WorkflowResult,
    WorkflowState,
    empty_metrics,
    make_entry,
    merge_metrics,
    merge_state,
)

logger = logging.getLogger(__name__)

SUPERVISOR = "supervisor"

StageFn = Callable[[WorkflowState], Awaitable[dict]]


# ── Node factories ────────────────────────────────────────────────────────────

def _guarded_stage(name: str, stage: StageFn) -> StageFn:
    """Wrap a stage: count the invocation, turn any exception into an error entry."""

    async def node(state: WorkflowState) -> dict:
        try:
            patch = await stage(state)
        except Exception as exc:
            message = f"{type(exc).__name__}: {exc}"
            logger.exception("Stage %s failed", name)
            patch = {
                "execution_log": [make_entry(name, f"Stage failed, no output merged: {message}")],
                "metrics": {"errors": [make_entry(name, message)]},
            }
        return merge_state(patch, {"metrics": {"stage_invocation_counts": {name: 1}}})

    node.__name__ = name
    return node


def _supervisor_node(router, cfg: WorkflowConfiguration):
    """Build the supervisor node around any object with ``async decide(state)``."""

    async def supervisor(
        state: WorkflowState,
    ) -> Command[Literal["retrieve_documents", "expand_topics", "generate_questions", "__end__"]]:
        turn = state.get("step_count", 0) + 1

        try:
            choice: RouteChoice = await router.decide(state)
            decision = RoutingDecision(choice.decision)
            reason, error = choice.reason, choice.error
        except Exception as exc:
            logger.exception("Router raised on turn %d", turn)
            decision = RoutingDecision.FINISH
            reason = "Router raised; finishing"
            error = f"{type(exc).__name__}: {exc}"

        errors = [make_entry(SUPERVISOR, error)] if error else []
        warnings = []
        if decision is not RoutingDecision.FINISH and turn >= cfg.max_steps:
            reason = (
                f"Recursion limit reached after {turn} supervisor turns "
                f"(max_steps={cfg.max_steps}); forcing Finish instead of {decision.value}"
            )
            logger.warning(reason)
            warnings.append(make_entry(SUPERVISOR, reason))
            decision = RoutingDecision.FINISH

        logger.info("Turn %d → %s (%s)", turn, decision.value, reason)
        update = {
            "step_count": turn,
            "routing_decision": decision.value,
            "execution_log": [make_entry(SUPERVISOR, f"{decision.value}: {reason}")],
        }
        if errors or warnings:
            update["metrics"] = {"errors": errors, "warnings": warnings}

        goto = END if decision is RoutingDecision.FINISH else STAGE_NODES[decision]
        return Command(goto=goto, update=update)

    return supervisor


# ── Graph ─────────────────────────────────────────────────────────────────────

def build_graph(
    providers: Providers,
    config: Optional[RunnableConfig] = None,
    router=None,
    checkpointer=None,
):
    """
    Build and compile the workflow graph.

    Args:
        providers:    capability objects used by the stages.
        config:       {"configurable": {...}} overrides for WorkflowConfiguration.
        router:       object with ``async decide(state) -> RouteChoice``;
                      defaults to the rule-first Supervisor.
        checkpointer: optional LangGraph checkpointer (state persisted per step).

    Returns:
        CompiledStateGraph ready for invocation.
    """
    cfg = WorkflowConfiguration.from_runnable_config(config)
    if router is None:
        router = Supervisor(providers.generator, cfg)

    async def _retrieve(state: WorkflowState) -> dict:
        return await retrieve_documents(state, providers, cfg)

    async def _expand(state: WorkflowState) -> dict:
        return await expand_topics(state, providers.generator, cfg)

    async def _generate(state: WorkflowState) -> dict:
        return await generate_questions(state, providers.generator, cfg)

    builder = StateGraph(WorkflowState, input_schema=WorkflowInput)

    # ── Register nodes ────────────────────────────────────────────────────────
    builder.add_node(SUPERVISOR, _supervisor_node(router, cfg))
    builder.add_node("retrieve_documents", _guarded_stage("retrieve_documents", _retrieve))
    builder.add_node("expand_topics", _guarded_stage("expand_topics", _expand))
    builder.add_node("generate_questions", _guarded_stage("generate_questions", _generate))

    # ── Static edges ──────────────────────────────────────────────────────────
    builder.add_edge(START, SUPERVISOR)
    # supervisor uses Command → retrieve_documents | expand_topics | generate_questions | END
    for stage in STAGE_NODES.values():
        builder.add_edge(stage, SUPERVISOR)

    return builder.compile(checkpointer=checkpointer)


# ── Entry points ──────────────────────────────────────────────────────────────

def validate_input(text: str, cfg: WorkflowConfiguration) -> str:
    """Return the stripped topic / query or raise ValidationError."""
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Topic or query must not be empty")
    if len(cleaned) > cfg.max_input_length:
        raise ValidationError(
            f"Topic or query is {len(cleaned)} characters; the maximum is {cfg.max_input_length}"
        )
    return cleaned


def build_result(state: dict) -> WorkflowResult:
    """Convert a terminal WorkflowState into the caller-facing result."""
    subtopics = list(state.get("subtopics") or [])
    questions = [QuizQuestion.model_validate(q) for q in state.get("questions") or []]
    metrics = merge_metrics(empty_metrics(), state.get("metrics"))

    message = ""
    retrieval_ran = metrics["stage_invocation_counts"].get("retrieve_documents", 0) > 0
    failure = retrieval_failure(state)
    if state.get("variant") == "retrieval" and retrieval_ran and not state.get("full_documents"):
        message = RETRIEVAL_FAILED_MESSAGE.format(error=failure) if failure else NO_DOCUMENTS_MESSAGE
    elif not questions:
        message = "No questions could be generated."

    return WorkflowResult(
        success=bool(subtopics) and bool(questions),
        run_id=state.get("run_id", ""),
        topic=state.get("input_topic", ""),
        enhanced_query=state.get("enhanced_query") or "",
        subtopics=subtopics,
        questions=questions,
        documents=list(state.get("full_documents") or []),
        total=len(questions),
        message=message,
        execution_log=list(state.get("execution_log") or []),
        metrics=metrics,
    )


async def _run(
    text: str,
    variant: Variant,
    providers: Providers,
    file_name: Optional[str],
    config: Optional[RunnableConfig],
    router,
    checkpointer,
) -> WorkflowResult:
    cfg = WorkflowConfiguration.from_runnable_config(config)
    topic = validate_input(text, cfg)

    run_id = str(uuid.uuid4())
    token = correlation_id.set(run_id)
    try:
        graph = build_graph(providers, config=config, router=router, checkpointer=checkpointer)
        initial_state: WorkflowInput = {
            "run_id": run_id,
            "variant": variant,
            "input_topic": topic,
            "file_name": file_name or "",
        }

        logger.info("Run started — variant=%s topic=%r", variant, topic[:50])
        start_time = time.time()
        final_state = await graph.ainvoke(
            initial_state,
            config={
                # Two supersteps per supervisor turn; the step ceiling always fires first
                "recursion_limit": 2 * cfg.max_steps + 5,
                "configurable": {"thread_id": run_id},
            },
        )
        result = build_result(final_state)
        logger.info(
            "Run complete in %.1fs — success=%s subtopics=%d questions=%d",
            time.time() - start_time,
            result.success,
            len(result.subtopics),
            result.total,
        )
        return result
    finally:
        correlation_id.reset(token)


async def run_quiz_workflow(
    topic: str,
    providers: Providers,
    config: Optional[RunnableConfig] = None,
    router=None,
    checkpointer=None,
) -> WorkflowResult:
    """
    Topic-driven quiz: expand the topic into subtopics, then generate questions.

    Raises:
        ValidationError: empty or over-long topic. Every other failure is reported
            in the result's metrics.
    """
    return await _run(topic, "topic", providers, None, config, router, checkpointer)


async def run_document_quiz_workflow(
    query: str,
    providers: Providers,
    file_name: Optional[str] = None,
    config: Optional[RunnableConfig] = None,
    router=None,
    checkpointer=None,
) -> WorkflowResult:
    """
    Retrieval-augmented quiz: retrieve grounding chunks (optionally from one file),
    then expand and generate from them. Finishes early with a "no documents"
    message when nothing is retrieved.
    """
    return await _run(query, "retrieval", providers, file_name, config, router, checkpointer)
