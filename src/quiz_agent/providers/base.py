"""Capability interfaces consumed by the workflow core."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Type, Union

from pydantic import BaseModel

# A prompt is either a single user string or a list of {"role", "content"} messages
Prompt = Union[str, Sequence[Any]]


@dataclass(frozen=True)
class ChunkHit:
    """One vector-search hit, ordered by descending score."""
    id: str
    score: float


class TextGenerator(ABC):
    """Chat / completion model behind a narrow, schema-aware interface."""

    @abstractmethod
    async def generate(
        self,
        prompt: Prompt,
        schema: Optional[Type[BaseModel]] = None,
    ) -> Union[str, BaseModel]:
        """
        Generate free text, or an instance of ``schema`` when one is given.

        Raises:
            ProviderError: on transport failure or when the output cannot be
                parsed into ``schema``.
        """


class Embedder(ABC):
    """Text embedding model."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for ``text``; raises ProviderError."""


class VectorSearch(ABC):
    """Similarity search over stored chunk embeddings."""

    @abstractmethod
    async def search(
        self,
        vector: list[float],
        k: int,
        file_name: Optional[str] = None,
    ) -> list[ChunkHit]:
        """Return up to ``k`` hits, best first, optionally restricted to one file."""


class DocumentStore(ABC):
    """Persisted chunk records."""

    @abstractmethod
    async def fetch_by_ids(self, ids: Sequence[str]) -> list[dict]:
        """Return ``{id, text, metadata}`` records in ``ids`` order, omitting missing ids."""

    @abstractmethod
    async def store_chunk(self, text: str, embedding: list[float], metadata: dict) -> str:
        """Persist one chunk and return its id."""

    @abstractmethod
    async def delete_by_file_name(self, file_name: str) -> int:
        """Delete every chunk of ``file_name`` and return how many were removed."""

    @abstractmethod
    async def list_files(self) -> list[dict]:
        """Return one ``{file_name, chunks, uploaded_at}`` summary per stored file."""


@dataclass
class Providers:
    """
    The capability objects a run is allowed to use.

    Only ``generator`` is required for the topic-driven workflow; retrieval,
    ingestion and grounded chat also need the embedder, search and store.
    """
    generator: TextGenerator
    embedder: Optional[Embedder] = None
    vector_search: Optional[VectorSearch] = None
    document_store: Optional[DocumentStore] = None
