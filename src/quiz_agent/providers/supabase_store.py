"""
Supabase (pgvector) document store.

Table ``documents``: id (uuid), text, embedding vector(768), metadata jsonb with
{source, fileName, uploadedAt, chunkIndex, totalChunks}.

Vector search goes through the ``match_documents`` RPC:
    match_documents(query_embedding, match_count, filter_file_name) -> [{id, similarity}]

supabase-py is synchronous, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import OrderedDict
from typing import Optional, Sequence

from supabase import Client, create_client

from quiz_agent.errors import ProviderError
from quiz_agent.providers.base import ChunkHit, DocumentStore, VectorSearch

logger = logging.getLogger(__name__)


def supabase_client_from_env() -> Client:
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY")
    if not url or not key:
        raise EnvironmentError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set.")
    return create_client(url, key)


class SupabaseDocumentStore(DocumentStore, VectorSearch):
    """DocumentStore and VectorSearch over one Supabase table."""

    def __init__(
        self,
        client: Client,
        table: str = "documents",
        match_function: str = "match_documents",
    ) -> None:
        self.client = client
        self.table = table
        self.match_function = match_function

    async def _execute(self, build_query, action: str) -> list[dict]:
        try:
            response = await asyncio.to_thread(lambda: build_query().execute())
        except Exception as exc:
            raise ProviderError(f"Supabase {action} failed: {exc}", provider="supabase") from exc
        return response.data or []

    # ── VectorSearch ──────────────────────────────────────────────────────────

    async def search(
        self,
        vector: list[float],
        k: int,
        file_name: Optional[str] = None,
    ) -> list[ChunkHit]:
        rows = await self._execute(
            lambda: self.client.rpc(
                self.match_function,
                {
                    "query_embedding": vector,
                    "match_count": k,
                    "filter_file_name": file_name,
                },
            ),
            "vector search",
        )
        hits = [ChunkHit(id=str(row["id"]), score=float(row.get("similarity", 0.0))) for row in rows]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:k]

    # ── DocumentStore ─────────────────────────────────────────────────────────

    async def fetch_by_ids(self, ids: Sequence[str]) -> list[dict]:
        if not ids:
            return []
        rows = await self._execute(
            lambda: self.client.table(self.table).select("id, text, metadata").in_("id", list(ids)),
            "fetch",
        )
        by_id = {str(row["id"]): row for row in rows}
        # Preserve the caller's (score) order; ids deleted since the search are skipped
        return [
            {"id": doc_id, "text": by_id[doc_id]["text"], "metadata": by_id[doc_id].get("metadata") or {}}
            for doc_id in ids
            if doc_id in by_id
        ]

    async def store_chunk(self, text: str, embedding: list[float], metadata: dict) -> str:
        rows = await self._execute(
            lambda: self.client.table(self.table).insert(
                {"text": text, "embedding": embedding, "metadata": metadata}
            ),
            "insert",
        )
        if not rows:
            raise ProviderError("Supabase insert returned no row", provider="supabase")
        return str(rows[0]["id"])

    async def delete_by_file_name(self, file_name: str) -> int:
        rows = await self._execute(
            lambda: self.client.table(self.table).delete().eq("metadata->>fileName", file_name),
            "delete",
        )
        logger.info("Deleted %d chunk(s) for %s", len(rows), file_name)
        return len(rows)

    async def list_files(self) -> list[dict]:
        rows = await self._execute(
            lambda: self.client.table(self.table).select("metadata"),
            "list",
        )
        summaries: "OrderedDict[str, dict]" = OrderedDict()
        for row in rows:
            metadata = row.get("metadata") or {}
            name = metadata.get("fileName", "")
            summary = summaries.setdefault(
                name, {"file_name": name, "chunks": 0, "uploaded_at": metadata.get("uploadedAt")}
            )
            summary["chunks"] += 1
        return list(summaries.values())
