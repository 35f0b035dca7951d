"""
test_question_generator.py — Unit tests for the per-subtopic question generation stage.
"""

import asyncio

import pytest

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.errors import StructuralValidationError
from quiz_agent.nodes.question_generator import generate_questions, to_quiz_question
from quiz_agent.schemas import QuestionBatch


@pytest.fixture
def cfg():
    return WorkflowConfiguration(retry_base_delay=0.0)


def _state(subtopics):
    return {"input_topic": "Photosynthesis", "subtopics": subtopics}


# ── to_quiz_question ──────────────────────────────────────────────────────────

def test_to_quiz_question_normalises_keys(draft):
    raw = draft("Pigments", 0, options={"a": "One", "b": "Two", "c": "Three", "d": "Four"}, correct_answer="c ")
    question = to_quiz_question(raw, "Pigments")
    assert set(question.options) == {"A", "B", "C", "D"}
    assert question.correct_option == "C"
    assert question.subtopic == "Pigments"


def test_to_quiz_question_rejects_missing_option(draft):
    raw = draft("Pigments", 0, options={"A": "One", "B": "Two", "C": "Three"})
    with pytest.raises(StructuralValidationError):
        to_quiz_question(raw, "Pigments")


def test_to_quiz_question_rejects_answer_outside_options(draft):
    with pytest.raises(StructuralValidationError):
        to_quiz_question(draft("Pigments", 0, correct_answer="E"), "Pigments")


# ── generate_questions ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_questions_follow_subtopic_order_not_completion_order(generator_cls, cfg):
    # B finishes last but its questions still sit between A's and C's
    generator = generator_cls(delays={"A": 0.0, "B": 0.05, "C": 0.0})
    patch_ = await generate_questions(_state(["A", "B", "C"]), generator, cfg)
    assert [q["subtopic"] for q in patch_["questions"]] == ["A", "A", "B", "B", "C", "C"]


@pytest.mark.asyncio
async def test_partial_failure_keeps_other_subtopics(generator_cls, cfg):
    generator = generator_cls(failing_subtopics={"Chlorophyll"})
    subtopics = ["Light Reactions", "Dark Reactions", "Chlorophyll", "Stomata"]
    patch_ = await generate_questions(_state(subtopics), generator, cfg)

    assert {q["subtopic"] for q in patch_["questions"]} == {"Light Reactions", "Dark Reactions", "Stomata"}
    assert len(patch_["questions"]) == 6

    per_subtopic = [w for w in patch_["metrics"]["warnings"] if "'Chlorophyll'" in w["message"]]
    assert len(per_subtopic) == 1
    assert "quota exceeded" in per_subtopic[0]["message"]

    # The failing subtopic used its whole retry budget; the others succeeded first time
    failing_calls = [p for p in generator.calls_for(QuestionBatch) if "Subtopic: Chlorophyll" in p[-1]["content"]]
    assert len(failing_calls) == cfg.max_retries


@pytest.mark.asyncio
async def test_invalid_drafts_are_dropped_individually(generator_cls, draft, cfg):
    batch = [
        draft("A", 0),
        draft("A", 1, options={"A": "x", "B": "y"}),
        draft("A", 2, explanation="short"),
        draft("A", 3),
    ]
    generator = generator_cls(batches={"A": batch})
    patch_ = await generate_questions(_state(["A"]), generator, cfg)

    assert [q["text"] for q in patch_["questions"]] == ["Question 1 about A?", "Question 4 about A?"]
    assert any("Dropped 2 malformed" in e["message"] for e in patch_["execution_log"])


@pytest.mark.asyncio
async def test_all_invalid_batch_is_retried_then_warned(generator_cls, draft, cfg):
    generator = generator_cls(batches={"A": [draft("A", 0, correct_answer="Z")]})
    patch_ = await generate_questions(_state(["A"]), generator, cfg)

    assert patch_.get("questions", []) == []
    assert len(generator.calls_for(QuestionBatch)) == cfg.max_retries
    assert any("No questions for subtopic 'A'" in w["message"] for w in patch_["metrics"]["warnings"])


@pytest.mark.asyncio
async def test_batch_is_capped_at_questions_per_subtopic(generator_cls):
    generator = generator_cls(questions_per_call=6)
    cfg = WorkflowConfiguration(retry_base_delay=0.0, questions_per_subtopic=4)
    patch_ = await generate_questions(_state(["A", "B"]), generator, cfg)
    assert len(patch_["questions"]) == 8
    assert not any("expected questions" in w["message"] for w in patch_.get("metrics", {}).get("warnings", []))


@pytest.mark.asyncio
async def test_shortfall_is_warned_without_naming_subtopics(generator_cls, cfg):
    generator = generator_cls(questions_per_call=2)
    patch_ = await generate_questions(_state(["A", "B", "C"]), generator, cfg)
    [warning] = patch_["metrics"]["warnings"]
    assert warning["message"] == "Generated 6 of 30 expected questions"


@pytest.mark.asyncio
async def test_unexpected_task_error_becomes_warning(generator_cls, cfg):
    class Exploding(generator_cls):
        async def generate(self, prompt, schema=None):
            if "Subtopic: B" in prompt[-1]["content"]:
                raise RuntimeError("socket closed")
            return await super().generate(prompt, schema)

    patch_ = await generate_questions(_state(["A", "B"]), Exploding(), cfg)
    assert {q["subtopic"] for q in patch_["questions"]} == {"A"}
    assert any("'B'" in w["message"] and "socket closed" in w["message"] for w in patch_["metrics"]["warnings"])


@pytest.mark.asyncio
async def test_document_context_reaches_prompt(generator, cfg):
    state = _state(["A"])
    state["full_documents"] = [{"id": "1", "text": "Rubisco fixes carbon dioxide.", "metadata": {}}]
    await generate_questions(state, generator, cfg)
    [prompt] = generator.calls_for(QuestionBatch)
    assert "Rubisco fixes carbon dioxide." in prompt[0]["content"]


@pytest.mark.asyncio
async def test_dropped_count_reflects_successful_attempt_only(generator_cls, draft, cfg):
    attempts = [
        [draft("A", 0, correct_answer="Z"), draft("A", 1, correct_answer="Z")],
        [draft("A", 0), draft("A", 1, correct_answer="Z")],
    ]

    class TwoAttempts(generator_cls):
        async def generate(self, prompt, schema=None):
            self.calls.append((schema, prompt))
            return QuestionBatch(questions=attempts.pop(0))

    patch_ = await generate_questions(_state(["A"]), TwoAttempts(), cfg)

    assert len(patch_["questions"]) == 1
    dropped = [e["message"] for e in patch_["execution_log"] if "Dropped" in e["message"]]
    assert dropped == ["Dropped 1 malformed question(s) for 'A'"]


@pytest.mark.asyncio
async def test_cancelled_subtopic_task_becomes_warning(generator_cls, cfg):
    class Cancelling(generator_cls):
        async def generate(self, prompt, schema=None):
            if "Subtopic: B" in prompt[-1]["content"]:
                raise asyncio.CancelledError()
            return await super().generate(prompt, schema)

    patch_ = await generate_questions(_state(["A", "B"]), Cancelling(), cfg)

    assert {q["subtopic"] for q in patch_["questions"]} == {"A"}
    assert any("No questions for subtopic 'B'" in w["message"] for w in patch_["metrics"]["warnings"])
