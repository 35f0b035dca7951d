"""
conftest.py — Shared pytest fixtures for the quiz workflow tests.

No test touches a network: the text generator is scripted, embeddings are a
deterministic bag-of-words hash, and documents live in InMemoryDocumentStore.
"""

import asyncio
import hashlib
import re

import pytest

from quiz_agent.errors import ProviderError
from quiz_agent.providers import Embedder, InMemoryDocumentStore, Providers, TextGenerator
from quiz_agent.schemas import DraftQuestion, QuestionBatch, RoutingChoice, SubtopicList


def make_draft(subtopic: str, index: int, **overrides) -> DraftQuestion:
    fields = {
        "question": f"Question {index + 1} about {subtopic}?",
        "options": {
            "A": f"Correct statement about {subtopic}",
            "B": "Distractor one",
            "C": "Distractor two",
            "D": "Distractor three",
        },
        "correct_answer": "A",
        "explanation": f"Option A is the accurate description of {subtopic}.",
    }
    fields.update(overrides)
    return DraftQuestion(**fields)


def _user_text(prompt) -> str:
    if isinstance(prompt, str):
        return prompt
    return "\n".join(m["content"] for m in prompt if m.get("role") == "user")


def _subtopic_of(prompt) -> str:
    match = re.search(r"^Subtopic: (.+)$", _user_text(prompt), flags=re.MULTILINE)
    return match.group(1).strip() if match else ""


class ScriptedGenerator(TextGenerator):
    """
    TextGenerator stub keyed on the requested schema.

    subtopics          list returned for SubtopicList, or an Exception to raise
    questions_per_call drafts returned per QuestionBatch call
    batches            optional {subtopic: [DraftQuestion, ...]} override
    failing_subtopics  subtopics whose QuestionBatch calls always raise ProviderError
    delays             {subtopic: seconds} awaited before answering
    route              value for RoutingChoice.next, or an Exception to raise
    text               free-text reply (query enhancement / chat), or an Exception
    """

    def __init__(
        self,
        subtopics=("Light Reactions", "Dark Reactions", "Chlorophyll"),
        questions_per_call=2,
        batches=None,
        failing_subtopics=(),
        delays=None,
        route="Finish",
        text="enhanced search query",
    ):
        self.subtopics = subtopics
        self.questions_per_call = questions_per_call
        self.batches = batches or {}
        self.failing_subtopics = set(failing_subtopics)
        self.delays = delays or {}
        self.route = route
        self.text = text
        self.calls: list[tuple] = []

    def calls_for(self, schema):
        return [prompt for s, prompt in self.calls if s is schema]

    async def generate(self, prompt, schema=None):
        self.calls.append((schema, prompt))

        if schema is SubtopicList:
            if isinstance(self.subtopics, Exception):
                raise self.subtopics
            return SubtopicList(subtopics=list(self.subtopics))

        if schema is QuestionBatch:
            subtopic = _subtopic_of(prompt)
            await asyncio.sleep(self.delays.get(subtopic, 0))
            if subtopic in self.failing_subtopics:
                raise ProviderError(f"quota exceeded while generating {subtopic}")
            if subtopic in self.batches:
                return QuestionBatch(questions=list(self.batches[subtopic]))
            return QuestionBatch(
                questions=[make_draft(subtopic, i) for i in range(self.questions_per_call)]
            )

        if schema is RoutingChoice:
            if isinstance(self.route, Exception):
                raise self.route
            return RoutingChoice(next=self.route, reasoning="scripted")

        if isinstance(self.text, Exception):
            raise self.text
        return self.text


class HashingEmbedder(Embedder):
    """Deterministic bag-of-words embedding; texts sharing words score higher."""

    def __init__(self, dimensions: int = 64, fail: bool = False):
        self.dimensions = dimensions
        self.fail = fail
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise ProviderError("embedding quota exceeded", provider="embedder")
        vector = [0.0] * self.dimensions
        for word in re.findall(r"[a-z]+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimensions
            vector[bucket] += 1.0
        return vector


@pytest.fixture
def generator_cls():
    return ScriptedGenerator


@pytest.fixture
def draft():
    return make_draft


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def providers(generator, embedder, store):
    return Providers(
        generator=generator,
        embedder=embedder,
        vector_search=store,
        document_store=store,
    )


@pytest.fixture
def fast_config():
    """No backoff sleeps; otherwise defaults."""
    return {"configurable": {"retry_base_delay": 0.0}}
