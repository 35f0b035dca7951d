"""
topic_expander.py — Topic expansion stage.

Input:  input_topic (+ full_documents as grounding in the retrieval variant)
Output: subtopics (replace), one execution_log entry, an error entry on fallback

A structured SubtopicList request is retried with backoff; when every attempt
fails the stage synthesises placeholder subtopics so question generation always
has input.
"""

from __future__ import annotations

import logging

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.errors import ProviderError, StructuralValidationError
from quiz_agent.nodes.retry import call_with_retries
from quiz_agent.prompts import DOCUMENT_CONTEXT_BLOCK, TOPIC_EXPANSION_PROMPT
from quiz_agent.providers.base import TextGenerator
from quiz_agent.schemas import SubtopicList, WorkflowState, make_entry

logger = logging.getLogger(__name__)

STAGE = "expand_topics"
MAX_SUBTOPIC_LENGTH = 120

_FALLBACK_SUFFIXES = ("Fundamentals", "Advanced Concepts", "Practical Applications")


def fallback_subtopics(topic: str) -> list[str]:
    """Deterministic placeholders used when generation keeps failing."""
    return [f"{topic} - {suffix}" for suffix in _FALLBACK_SUFFIXES]


def validate_subtopics(raw: list[str], cfg: WorkflowConfiguration) -> list[str]:
    """
    Strip, de-duplicate (case-insensitive, first wins) and bound-check subtopics.

    Raises:
        StructuralValidationError: empty / over-long entries or a count outside
            [min_subtopics, max_subtopics].
    """
    cleaned: list[str] = []
    seen: set[str] = set()
    for item in raw:
        text = (item or "").strip()
        if not text:
            raise StructuralValidationError("Subtopic list contains an empty entry")
        if len(text) > MAX_SUBTOPIC_LENGTH:
            raise StructuralValidationError(f"Subtopic too long ({len(text)} chars)")
        if text.lower() in seen:
            continue
        seen.add(text.lower())
        cleaned.append(text)

    if not cfg.min_subtopics <= len(cleaned) <= cfg.max_subtopics:
        raise StructuralValidationError(
            f"Expected {cfg.min_subtopics}-{cfg.max_subtopics} distinct subtopics, got {len(cleaned)}"
        )
    return cleaned


def document_context(documents: list[dict], limit: int = 5, max_chars: int = 1500) -> str:
    """Numbered excerpt block from hydrated documents (empty string when none)."""
    return "\n\n".join(
        f"[{i}] {doc.get('text', '')[:max_chars]}"
        for i, doc in enumerate(documents[:limit], 1)
        if doc.get("text")
    )


async def expand_topics(
    state: WorkflowState,
    generator: TextGenerator,
    cfg: WorkflowConfiguration,
) -> dict:
    """Topic expansion stage. Always returns a usable subtopic list."""
    topic = state.get("input_topic", "")
    context = document_context(state.get("full_documents", []))

    messages = [
        {
            "role": "system",
            "content": TOPIC_EXPANSION_PROMPT.format(
                min_subtopics=cfg.min_subtopics,
                max_subtopics=cfg.max_subtopics,
                context_block=DOCUMENT_CONTEXT_BLOCK.format(context=context) if context else "",
            ),
        },
        {"role": "user", "content": f"Main topic: {topic}"},
    ]

    async def _attempt() -> list[str]:
        result = await generator.generate(messages, schema=SubtopicList)
        return validate_subtopics(result.subtopics, cfg)

    try:
        subtopics = await call_with_retries(
            _attempt,
            attempts=cfg.max_retries,
            base_delay=cfg.retry_base_delay,
            label=f"{STAGE}({topic!r})",
        )
    except (ProviderError, StructuralValidationError) as exc:
        subtopics = fallback_subtopics(topic)
        logger.error("Topic expansion failed for %r, using fallback: %s", topic, exc)
        return {
            "subtopics": subtopics,
            "execution_log": [
                make_entry(STAGE, f"Fallback subtopics used: {', '.join(subtopics)}")
            ],
            "metrics": {
                "errors": [
                    make_entry(
                        STAGE,
                        f"Subtopic generation failed after {cfg.max_retries} attempt(s): {exc}",
                    )
                ]
            },
        }

    logger.info("Generated %d subtopics for %r", len(subtopics), topic)
    return {
        "subtopics": subtopics,
        "execution_log": [make_entry(STAGE, f"Generated subtopics: {', '.join(subtopics)}")],
    }
