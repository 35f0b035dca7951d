"""
rag_chat.py — Question answering grounded in retrieved document chunks.

Reuses the retrieval stage (enhance → embed → top-K search → hydrate), then asks the
generator for an answer over a numbered context block. Always returns a RagAnswer.
"""

from __future__ import annotations

import logging
from typing import Optional

from langchain_core.runnables import RunnableConfig

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.errors import ProviderError
from quiz_agent.main_graph import validate_input
from quiz_agent.nodes.retriever import retrieve_documents
from quiz_agent.prompts import NO_DOCUMENTS_MESSAGE, RAG_CHAT_PROMPT, RAG_ERROR_MESSAGE
from quiz_agent.providers.base import Providers
from quiz_agent.schemas import RagAnswer, RagSource

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200


def _sources(documents: list[dict], chunks: list[dict]) -> list[RagSource]:
    scores = {chunk["id"]: chunk["relevance_score"] for chunk in chunks}
    return [
        RagSource(
            file_name=doc["metadata"].get("fileName", ""),
            chunk_index=doc["metadata"].get("chunkIndex", 0),
            text=doc["text"][:PREVIEW_CHARS] + "...",
            score=scores.get(doc["id"], 0.0),
        )
        for doc in documents
    ]


async def answer_question(
    query: str,
    providers: Providers,
    file_name: Optional[str] = None,
    config: Optional[RunnableConfig] = None,
) -> RagAnswer:
    """
    Answer ``query`` from the stored documents.

    Raises:
        ValidationError: empty or over-long query.
    """
    cfg = WorkflowConfiguration.from_runnable_config(config)
    query = validate_input(query, cfg)

    try:
        retrieval = await retrieve_documents(
            {"input_topic": query, "file_name": file_name or ""}, providers, cfg
        )
        documents = retrieval["full_documents"]
        if not documents:
            return RagAnswer(success=True, answer=NO_DOCUMENTS_MESSAGE)

        context = "\n\n".join(f"[{i}] {doc['text']}" for i, doc in enumerate(documents, 1))
        answer = await providers.generator.generate(
            RAG_CHAT_PROMPT.format(context=context, query=query)
        )
    except ProviderError as exc:
        logger.error("RAG chat failed: %s", exc)
        return RagAnswer(success=False, answer=RAG_ERROR_MESSAGE, error=str(exc))

    logger.info("Answered from %d chunk(s)", len(documents))
    return RagAnswer(
        success=True,
        answer=str(answer),
        sources=_sources(documents, retrieval["retrieved_chunks"]),
    )
