"""
question_generator.py — Per-subtopic question generation stage.

Fans out one task per subtopic (asyncio.gather), each with its own retry budget.
Drafts are validated one by one into QuizQuestion; malformed drafts are dropped.
A subtopic whose attempts all fail, or never yield a valid question, contributes
zero questions and exactly one warning. Per-subtopic patches are folded with
merge_state in subtopic order, so completion order never affects the result.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError as PydanticValidationError

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.errors import ProviderError, StructuralValidationError
from quiz_agent.nodes.retry import call_with_retries
from quiz_agent.nodes.topic_expander import document_context
from quiz_agent.prompts import DOCUMENT_CONTEXT_BLOCK, QUESTION_GENERATION_PROMPT
from quiz_agent.providers.base import TextGenerator
from quiz_agent.schemas import (
    DraftQuestion,
    QuestionBatch,
    QuizQuestion,
    WorkflowState,
    make_entry,
    merge_state,
)

logger = logging.getLogger(__name__)

STAGE = "generate_questions"


def to_quiz_question(draft: DraftQuestion, subtopic: str) -> QuizQuestion:
    """
    Normalise a draft (key case, whitespace) and validate it.

    Raises:
        StructuralValidationError: wrong option keys, unknown correct answer,
            or question / explanation shorter than 10 characters.
    """
    options = {str(key).strip().upper(): (value or "").strip() for key, value in draft.options.items()}
    try:
        return QuizQuestion(
            text=(draft.question or "").strip(),
            options=options,
            correct_option=(draft.correct_answer or "").strip().upper(),
            explanation=(draft.explanation or "").strip(),
            subtopic=subtopic,
        )
    except PydanticValidationError as exc:
        raise StructuralValidationError(
            f"Invalid question {draft.question[:40]!r}: {exc.error_count()} problem(s)"
        ) from exc


def _build_messages(topic: str, subtopic: str, context: str, cfg: WorkflowConfiguration) -> list:
    return [
        {
            "role": "system",
            "content": QUESTION_GENERATION_PROMPT.format(
                questions_per_subtopic=cfg.questions_per_subtopic,
                context_block=DOCUMENT_CONTEXT_BLOCK.format(context=context) if context else "",
            ),
        },
        {"role": "user", "content": f"Subtopic: {subtopic}\nMain topic: {topic}"},
    ]


async def questions_for_subtopic(
    topic: str,
    subtopic: str,
    context: str,
    generator: TextGenerator,
    cfg: WorkflowConfiguration,
) -> dict:
    """
    Generate and validate questions for one subtopic.

    Returns a partial-state patch: {"questions": [...]} on success, or
    {"metrics": {"warnings": [...]}} when the subtopic produced nothing.
    Never raises for provider or validation failures.
    """
    messages = _build_messages(topic, subtopic, context, cfg)
    dropped = 0

    async def _attempt() -> list[QuizQuestion]:
        nonlocal dropped
        dropped = 0
        batch: QuestionBatch = await generator.generate(messages, schema=QuestionBatch)
        valid: list[QuizQuestion] = []
        for draft in batch.questions:
            try:
                valid.append(to_quiz_question(draft, subtopic))
            except StructuralValidationError as exc:
                dropped += 1
                logger.debug("Dropped question for %r: %s", subtopic, exc)
        if not valid:
            raise StructuralValidationError(
                f"No valid questions in a batch of {len(batch.questions)}"
            )
        return valid[: cfg.questions_per_subtopic]

    try:
        questions = await call_with_retries(
            _attempt,
            attempts=cfg.max_retries,
            base_delay=cfg.retry_base_delay,
            label=f"{STAGE}({subtopic!r})",
        )
    except (ProviderError, StructuralValidationError) as exc:
        return {
            "metrics": {
                "warnings": [
                    make_entry(
                        STAGE,
                        f"No questions for subtopic '{subtopic}' after "
                        f"{cfg.max_retries} attempt(s): {exc}",
                    )
                ]
            }
        }

    patch: dict = {"questions": [q.model_dump() for q in questions]}
    if dropped:
        patch["execution_log"] = [
            make_entry(STAGE, f"Dropped {dropped} malformed question(s) for '{subtopic}'")
        ]
    return patch


async def generate_questions(
    state: WorkflowState,
    generator: TextGenerator,
    cfg: WorkflowConfiguration,
) -> dict:
    """Question generation stage: concurrent per-subtopic tasks, join-all, ordered merge."""
    topic = state.get("input_topic", "")
    subtopics = list(state.get("subtopics", []))
    context = document_context(state.get("full_documents", []))

    tasks = [
        asyncio.create_task(questions_for_subtopic(topic, subtopic, context, generator, cfg))
        for subtopic in subtopics
    ]
    # gather returns results in submission order regardless of completion order;
    # return_exceptions keeps every task joined even if one fails unexpectedly
    results = await asyncio.gather(*tasks, return_exceptions=True)

    patch: dict = {}
    for subtopic, result in zip(subtopics, results):
        if isinstance(result, BaseException):
            logger.error("Question task for %r raised: %r", subtopic, result)
            result = {
                "metrics": {
                    "warnings": [
                        make_entry(STAGE, f"No questions for subtopic '{subtopic}': {result!r}")
                    ]
                }
            }
        patch = merge_state(patch, result)

    total = len(patch.get("questions", []))
    expected = len(subtopics) * cfg.questions_per_subtopic
    if total < expected:
        patch = merge_state(
            patch,
            {"metrics": {"warnings": [make_entry(STAGE, f"Generated {total} of {expected} expected questions")]}},
        )

    logger.info("Generated %d question(s) across %d subtopic(s)", total, len(subtopics))
    return merge_state(
        patch,
        {
            "execution_log": [
                make_entry(STAGE, f"Generated {total} questions across {len(subtopics)} subtopics")
            ],
        },
    )
