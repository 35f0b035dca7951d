from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Callable, Literal, Optional
from typing_extensions import TypedDict
from pydantic import BaseModel, ConfigDict, Field, model_validator


# ── Reducers ──────────────────────────────────────────────────────────────────
# Every WorkflowState field names one of these in MERGE_POLICY. LangGraph applies
# them to stage outputs; merge_state() applies the same table outside the graph.

def keep_first(current: Any, update: Any) -> Any:
    """Reducer: the first non-empty value wins (set-once fields such as input_topic)."""
    return current if current else update


def replace_value(current: Any, update: Any) -> Any:
    """Reducer: the update replaces the current value."""
    return update


def append_items(current: Optional[list], update: Optional[list]) -> list:
    """Reducer: concatenate, preserving order (questions, execution_log)."""
    return list(current or []) + list(update or [])


def merge_metrics(current: Optional[dict], update: Optional[dict]) -> dict:
    """Reducer: sum stage invocation counts and append errors / warnings."""
    current = current or {}
    update = update or {}
    counts = dict(current.get("stage_invocation_counts", {}))
    for stage, n in update.get("stage_invocation_counts", {}).items():
        counts[stage] = counts.get(stage, 0) + n
    return {
        "stage_invocation_counts": counts,
        "errors": append_items(current.get("errors"), update.get("errors")),
        "warnings": append_items(current.get("warnings"), update.get("warnings")),
    }


MERGE_POLICY: dict[str, Callable[[Any, Any], Any]] = {
    "run_id": keep_first,
    "variant": keep_first,
    "input_topic": keep_first,
    "file_name": keep_first,
    "enhanced_query": replace_value,
    "retrieved_chunks": replace_value,
    "full_documents": replace_value,
    "subtopics": replace_value,
    "questions": append_items,
    "routing_decision": replace_value,
    "step_count": replace_value,
    "execution_log": append_items,
    "metrics": merge_metrics,
}


def merge_state(state: dict, patch: dict) -> dict:
    """
    Pure merge of a partial-state patch into a state dict.

    Fields follow MERGE_POLICY; unknown keys replace. Neither argument is mutated.
    """
    merged = dict(state)
    for key, value in patch.items():
        reducer = MERGE_POLICY.get(key, replace_value)
        merged[key] = reducer(state.get(key), value)
    return merged


def empty_metrics() -> dict:
    return {"stage_invocation_counts": {}, "errors": [], "warnings": []}


def make_entry(stage: str, message: str) -> dict:
    """Build an execution-log / metrics entry stamped with the current UTC time."""
    return {
        "stage": stage,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ── Routing ───────────────────────────────────────────────────────────────────

class RoutingDecision(str, Enum):
    EXPAND_TOPICS = "ExpandTopics"
    RETRIEVE_DOCUMENTS = "RetrieveDocuments"
    GENERATE_QUESTIONS = "GenerateQuestions"
    FINISH = "Finish"


# Graph node bound to each non-terminal decision
STAGE_NODES: dict[RoutingDecision, str] = {
    RoutingDecision.RETRIEVE_DOCUMENTS: "retrieve_documents",
    RoutingDecision.EXPAND_TOPICS: "expand_topics",
    RoutingDecision.GENERATE_QUESTIONS: "generate_questions",
}

Variant = Literal["topic", "retrieval"]


# ── Workflow State ────────────────────────────────────────────────────────────

class WorkflowState(TypedDict, total=False):
    """
    State threaded through every supervisor turn and stage.

    Owned by the executor for one run. Reducers mirror MERGE_POLICY:
    set-once identity fields, replace-semantics scalars and search results,
    append-only questions / log, accumulate-only metrics.
    """

    # ── Identity (set once) ────────────────────────────────────────────────────
    run_id: Annotated[str, keep_first]
    variant: Annotated[str, keep_first]              # "topic" | "retrieval"
    input_topic: Annotated[str, keep_first]          # topic or raw user query
    file_name: Annotated[str, keep_first]            # optional retrieval filter

    # ── Retrieval ──────────────────────────────────────────────────────────────
    enhanced_query: Annotated[str, replace_value]
    retrieved_chunks: Annotated[list[dict], replace_value]   # [{id, relevance_score}]
    full_documents: Annotated[list[dict], replace_value]     # [{id, text, metadata}]

    # ── Quiz ───────────────────────────────────────────────────────────────────
    subtopics: Annotated[list[str], replace_value]
    questions: Annotated[list[dict], append_items]           # QuizQuestion.model_dump()

    # ── Control flow / observability ───────────────────────────────────────────
    routing_decision: Annotated[str, replace_value]
    step_count: Annotated[int, replace_value]                # supervisor turns so far
    execution_log: Annotated[list[dict], append_items]       # [{stage, message, timestamp}]
    metrics: Annotated[dict, merge_metrics]


class WorkflowInput(TypedDict):
    """What the executor passes in to start a run."""
    run_id: str
    variant: str
    input_topic: str
    file_name: str


# ── Quiz Question (validated value type) ──────────────────────────────────────

OptionKey = Literal["A", "B", "C", "D"]
OPTION_KEYS: tuple[str, ...] = ("A", "B", "C", "D")


class QuizQuestion(BaseModel):
    """A validated multiple-choice question. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(min_length=10, description="The question text")
    options: dict[OptionKey, str] = Field(description="Exactly four options keyed A-D")
    correct_option: OptionKey
    explanation: str = Field(min_length=10)
    subtopic: Optional[str] = None

    @model_validator(mode="after")
    def _check_options(self) -> "QuizQuestion":
        if set(self.options) != set(OPTION_KEYS):
            raise ValueError(f"options must have exactly the keys {OPTION_KEYS}")
        if any(not value.strip() for value in self.options.values()):
            raise ValueError("options must be non-empty")
        if self.correct_option not in self.options:
            raise ValueError("correct_option must be one of the option keys")
        return self


# ── Structured Output — Topic Expansion ───────────────────────────────────────

class SubtopicList(BaseModel):
    """Subtopics produced by the topic expansion stage."""
    subtopics: list[str] = Field(
        description="Distinct, specific subtopics of the main topic, each a short phrase"
    )


# ── Structured Output — Question Generation ───────────────────────────────────
# Deliberately lenient: each draft is validated into a QuizQuestion individually so
# one malformed question does not discard the batch.

class DraftQuestion(BaseModel):
    question: str = Field(description="The question text")
    options: dict[str, str] = Field(description="Answer options keyed A, B, C and D")
    correct_answer: str = Field(description="Key of the correct option: A, B, C or D")
    explanation: str = Field(description="Why the correct option is right")


class QuestionBatch(BaseModel):
    """Multiple-choice questions for one subtopic."""
    questions: list[DraftQuestion]


# ── Structured Output — Supervisor Fallback ───────────────────────────────────

class RoutingChoice(BaseModel):
    """Supervisor decision for states the deterministic rules do not cover."""
    reasoning: str = Field(default="", description="Brief reasoning for observability")
    next: Literal["ExpandTopics", "GenerateQuestions", "Finish"]


# ── Run Results ───────────────────────────────────────────────────────────────

class WorkflowResult(BaseModel):
    """What a caller receives from a workflow run."""
    success: bool
    run_id: str
    topic: str
    enhanced_query: str = ""
    subtopics: list[str] = Field(default_factory=list)
    questions: list[QuizQuestion] = Field(default_factory=list)
    documents: list[dict] = Field(default_factory=list)
    total: int = 0
    message: str = ""
    execution_log: list[dict] = Field(default_factory=list)
    metrics: dict = Field(default_factory=empty_metrics)


class RagSource(BaseModel):
    file_name: str
    chunk_index: int
    text: str = Field(description="Preview of the chunk text")
    score: float


class RagAnswer(BaseModel):
    success: bool
    answer: str
    sources: list[RagSource] = Field(default_factory=list)
    error: Optional[str] = None


class IngestionResult(BaseModel):
    success: bool
    chunks_created: int = 0
    file_name: str = ""
    error: Optional[str] = None


class DeletionResult(BaseModel):
    success: bool
    deleted: int = 0
    error: Optional[str] = None


class FileSummary(BaseModel):
    file_name: str
    chunks: int
    uploaded_at: Optional[str] = None


__all__ = [
    "keep_first",
    "replace_value",
    "append_items",
    "merge_metrics",
    "MERGE_POLICY",
    "merge_state",
    "empty_metrics",
    "make_entry",
    "RoutingDecision",
    "STAGE_NODES",
    "Variant",
    "WorkflowState",
    "WorkflowInput",
    "OptionKey",
    "OPTION_KEYS",
    "QuizQuestion",
    "SubtopicList",
    "DraftQuestion",
    "QuestionBatch",
    "RoutingChoice",
    "WorkflowResult",
    "RagSource",
    "RagAnswer",
    "IngestionResult",
    "DeletionResult",
    "FileSummary",
]
