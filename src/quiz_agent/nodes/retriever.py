"""
retriever.py — Query enhancement + retrieval stage (retrieval-augmented variant).

  1. enhance   one best-effort generation call; on failure the raw query is used
               and the fallback is logged explicitly
  2. search    embed the (enhanced) query, top-K vector search
  3. hydrate   fetch full chunk records; ids that vanished since the search are
               dropped without error

Zero hits is not an error here; the supervisor decides what an empty result means.
Embedding / search / fetch failures propagate and are recorded by the executor.
"""

from __future__ import annotations

import logging
from typing import Optional

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.errors import ProviderError
from quiz_agent.prompts import QUERY_ENHANCEMENT_PROMPT
from quiz_agent.providers.base import Providers
from quiz_agent.schemas import WorkflowState, make_entry

logger = logging.getLogger(__name__)

STAGE = "retrieve_documents"
MAX_ENHANCED_QUERY_LENGTH = 1000


async def enhance_query(query: str, providers: Providers) -> tuple[str, Optional[str]]:
    """
    Rewrite ``query`` for search. No retry.

    Returns ``(query_to_use, failure_reason)``; ``failure_reason`` is None when the
    enhanced query is used.
    """
    try:
        enhanced = await providers.generator.generate(
            [
                {"role": "system", "content": QUERY_ENHANCEMENT_PROMPT},
                {"role": "user", "content": query},
            ]
        )
    except ProviderError as exc:
        return query, str(exc)

    enhanced = str(enhanced or "").strip().strip('"').strip()
    if not enhanced:
        return query, "empty rewrite"
    return enhanced[:MAX_ENHANCED_QUERY_LENGTH], None


async def retrieve_documents(
    state: WorkflowState,
    providers: Providers,
    cfg: WorkflowConfiguration,
) -> dict:
    """Retrieval stage: enhance → embed → search → hydrate."""
    if providers.embedder is None or providers.vector_search is None or providers.document_store is None:
        raise ProviderError("Retrieval requires an embedder, vector search and document store")

    raw_query = state.get("input_topic", "")
    file_name = state.get("file_name") or None

    query, failure = await enhance_query(raw_query, providers)
    log = []
    warnings = []
    if failure is None:
        log.append(make_entry(STAGE, f"Enhanced query: {query}"))
    else:
        message = f"Query enhancement failed ({failure}); using raw query unmodified"
        logger.warning(message)
        log.append(make_entry(STAGE, message))
        warnings.append(make_entry(STAGE, message))

    vector = await providers.embedder.embed(query)
    hits = await providers.vector_search.search(vector, cfg.retrieval_top_k, file_name)
    documents = await providers.document_store.fetch_by_ids([hit.id for hit in hits])

    missing = len(hits) - len(documents)
    summary = f"Retrieved {len(hits)} chunk(s), hydrated {len(documents)}"
    if missing:
        summary += f" ({missing} no longer stored)"
    if file_name:
        summary += f" from {file_name}"
    log.append(make_entry(STAGE, summary))
    logger.info(summary)

    patch = {
        "enhanced_query": query,
        "retrieved_chunks": [{"id": hit.id, "relevance_score": hit.score} for hit in hits],
        "full_documents": documents,
        "execution_log": log,
    }
    if warnings:
        patch["metrics"] = {"warnings": warnings}
    return patch
