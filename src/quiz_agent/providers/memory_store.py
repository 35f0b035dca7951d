"""In-process DocumentStore / VectorSearch scored by cosine similarity."""

from __future__ import annotations

import math
import uuid
from typing import Optional, Sequence

from quiz_agent.providers.base import ChunkHit, DocumentStore, VectorSearch


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryDocumentStore(DocumentStore, VectorSearch):
    """
    Keeps chunks in a dict keyed by id.

    Suitable for local runs and tests. Insertion order is kept so list_files()
    reports files in upload order.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict] = {}

    async def search(
        self,
        vector: list[float],
        k: int,
        file_name: Optional[str] = None,
    ) -> list[ChunkHit]:
        scored = [
            ChunkHit(id=doc_id, score=cosine_similarity(vector, record["embedding"]))
            for doc_id, record in self._records.items()
            if file_name is None or record["metadata"].get("fileName") == file_name
        ]
        scored.sort(key=lambda hit: hit.score, reverse=True)
        return scored[:k]

    async def fetch_by_ids(self, ids: Sequence[str]) -> list[dict]:
        return [
            {
                "id": doc_id,
                "text": self._records[doc_id]["text"],
                "metadata": dict(self._records[doc_id]["metadata"]),
            }
            for doc_id in ids
            if doc_id in self._records
        ]

    async def store_chunk(self, text: str, embedding: list[float], metadata: dict) -> str:
        doc_id = str(uuid.uuid4())
        self._records[doc_id] = {
            "text": text,
            "embedding": list(embedding),
            "metadata": dict(metadata),
        }
        return doc_id

    async def delete_by_file_name(self, file_name: str) -> int:
        doomed = [
            doc_id
            for doc_id, record in self._records.items()
            if record["metadata"].get("fileName") == file_name
        ]
        for doc_id in doomed:
            del self._records[doc_id]
        return len(doomed)

    async def list_files(self) -> list[dict]:
        summaries: dict[str, dict] = {}
        for record in self._records.values():
            metadata = record["metadata"]
            name = metadata.get("fileName", "")
            summary = summaries.setdefault(
                name, {"file_name": name, "chunks": 0, "uploaded_at": metadata.get("uploadedAt")}
            )
            summary["chunks"] += 1
        return list(summaries.values())

    def __len__(self) -> int:
        return len(self._records)
