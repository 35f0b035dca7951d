"""
test_topic_expander.py — Unit tests for the topic expansion stage and retry helper.
"""

from unittest.mock import AsyncMock, patch

import pytest

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.errors import ProviderError, StructuralValidationError
from quiz_agent.nodes.retry import call_with_retries
from quiz_agent.nodes.topic_expander import (
    document_context,
    expand_topics,
    fallback_subtopics,
    validate_subtopics,
)
from quiz_agent.schemas import SubtopicList


@pytest.fixture
def cfg():
    return WorkflowConfiguration(retry_base_delay=0.0)


# ── validate_subtopics ────────────────────────────────────────────────────────

def test_validate_strips_and_dedupes(cfg):
    raw = ["  Light Reactions ", "light reactions", "Calvin Cycle", "Chlorophyll"]
    assert validate_subtopics(raw, cfg) == ["Light Reactions", "Calvin Cycle", "Chlorophyll"]


def test_validate_rejects_too_few_after_dedupe(cfg):
    with pytest.raises(StructuralValidationError):
        validate_subtopics(["Calvin Cycle", "calvin cycle", "Chlorophyll"], cfg)


def test_validate_rejects_too_many(cfg):
    with pytest.raises(StructuralValidationError):
        validate_subtopics([f"Subtopic {i}" for i in range(6)], cfg)


def test_validate_rejects_empty_and_overlong(cfg):
    with pytest.raises(StructuralValidationError):
        validate_subtopics(["A", " ", "C"], cfg)
    with pytest.raises(StructuralValidationError):
        validate_subtopics(["A", "B", "x" * 121], cfg)


def test_fallback_subtopics_shape():
    assert fallback_subtopics("Photosynthesis") == [
        "Photosynthesis - Fundamentals",
        "Photosynthesis - Advanced Concepts",
        "Photosynthesis - Practical Applications",
    ]


def test_document_context_numbers_and_limits():
    docs = [{"id": str(i), "text": f"chunk {i}", "metadata": {}} for i in range(7)]
    context = document_context(docs)
    assert context.startswith("[1] chunk 0")
    assert "[5] chunk 4" in context
    assert "chunk 5" not in context
    assert document_context([]) == ""


# ── expand_topics ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_expand_topics_success(generator, cfg):
    patch_ = await expand_topics({"input_topic": "Photosynthesis"}, generator, cfg)
    assert patch_["subtopics"] == ["Light Reactions", "Dark Reactions", "Chlorophyll"]
    assert len(patch_["execution_log"]) == 1
    assert "metrics" not in patch_

    [prompt] = generator.calls_for(SubtopicList)
    assert prompt[-1]["content"] == "Main topic: Photosynthesis"


@pytest.mark.asyncio
async def test_expand_topics_uses_document_context(generator, cfg):
    state = {
        "input_topic": "What is in my notes?",
        "full_documents": [{"id": "1", "text": "Stomata regulate gas exchange.", "metadata": {}}],
    }
    await expand_topics(state, generator, cfg)
    [prompt] = generator.calls_for(SubtopicList)
    assert "Stomata regulate gas exchange." in prompt[0]["content"]


@pytest.mark.asyncio
async def test_expand_topics_falls_back_after_retries(generator_cls, cfg):
    generator = generator_cls(subtopics=ProviderError("rate limited"))
    patch_ = await expand_topics({"input_topic": "Photosynthesis"}, generator, cfg)

    assert patch_["subtopics"] == fallback_subtopics("Photosynthesis")
    assert len(generator.calls_for(SubtopicList)) == cfg.max_retries
    [error] = patch_["metrics"]["errors"]
    assert error["stage"] == "expand_topics"
    assert "rate limited" in error["message"]


@pytest.mark.asyncio
async def test_expand_topics_retries_invalid_count(generator_cls, cfg):
    generator = generator_cls(subtopics=["Only One"])
    patch_ = await expand_topics({"input_topic": "Photosynthesis"}, generator, cfg)
    assert patch_["subtopics"] == fallback_subtopics("Photosynthesis")
    assert len(generator.calls_for(SubtopicList)) == 2


# ── call_with_retries ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_retry_backoff_grows_linearly():
    operation = AsyncMock(side_effect=ProviderError("boom"))
    with patch("quiz_agent.nodes.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(ProviderError):
            await call_with_retries(operation, attempts=3, base_delay=1.5, label="test")

    assert operation.await_count == 3
    assert [c.args[0] for c in sleep.await_args_list] == [1.5, 3.0]


@pytest.mark.asyncio
async def test_retry_returns_first_success():
    operation = AsyncMock(side_effect=[StructuralValidationError("bad"), "ok"])
    with patch("quiz_agent.nodes.retry.asyncio.sleep", new=AsyncMock()):
        result = await call_with_retries(operation, attempts=2, base_delay=1.0, label="test")
    assert result == "ok"
    assert operation.await_count == 2


@pytest.mark.asyncio
async def test_retry_does_not_catch_other_errors():
    operation = AsyncMock(side_effect=KeyError("unexpected"))
    with pytest.raises(KeyError):
        await call_with_retries(operation, attempts=3, base_delay=0.0, label="test")
    assert operation.await_count == 1
