"""
ingestion.py — Document chunking, embedding and management.

  split_text       fixed-size windows with overlap, cut at sentence / newline
                   boundaries when one lies past the window midpoint
  ingest_document  split → embed → store, one record per chunk
  delete_document  remove every chunk of a file
  list_files       one summary per stored file
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from langchain_core.runnables import RunnableConfig

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.errors import ProviderError
from quiz_agent.providers.base import Providers
from quiz_agent.schemas import DeletionResult, FileSummary, IngestionResult

logger = logging.getLogger(__name__)


def split_text(text: str, chunk_size: int = 1000, chunk_overlap: int = 200) -> list[str]:
    """
    Split ``text`` into trimmed, non-empty chunks of at most ``chunk_size`` characters.

    When a window does not reach the end of the text, it is cut just after the last
    ". " or newline if that boundary lies past ``chunk_size / 2`` and the next window
    starts there; otherwise the next window starts ``chunk_size - chunk_overlap`` later.
    """
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    chunks: list[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        chunk = text[start:end]

        if end < len(text):
            break_point = max(chunk.rfind(". "), chunk.rfind("\n"))
            if break_point > chunk_size / 2:
                chunk = chunk[: break_point + 1]
                start += break_point + 1
            else:
                start += chunk_size - chunk_overlap
        else:
            start = len(text)

        if chunk.strip():
            chunks.append(chunk.strip())

    return chunks


async def ingest_document(
    file_name: str,
    content: str,
    providers: Providers,
    config: Optional[RunnableConfig] = None,
) -> IngestionResult:
    """Chunk, embed and store ``content``. Provider failures are reported, not raised."""
    cfg = WorkflowConfiguration.from_runnable_config(config)
    if providers.embedder is None or providers.document_store is None:
        return IngestionResult(success=False, error="Ingestion requires an embedder and document store")

    chunks = split_text(content, cfg.chunk_size, cfg.chunk_overlap)
    total_chunks = len(chunks)
    uploaded_at = datetime.now(timezone.utc).isoformat()
    logger.info("Processing %s: %d chunk(s)", file_name, total_chunks)

    try:
        for index, chunk in enumerate(chunks):
            logger.debug("Embedding chunk %d/%d of %s", index + 1, total_chunks, file_name)
            embedding = await providers.embedder.embed(chunk)
            await providers.document_store.store_chunk(
                chunk,
                embedding,
                {
                    "source": file_name,
                    "fileName": file_name,
                    "uploadedAt": uploaded_at,
                    "chunkIndex": index,
                    "totalChunks": total_chunks,
                },
            )
    except ProviderError as exc:
        logger.error("Embedding %s failed: %s", file_name, exc)
        return IngestionResult(success=False, file_name=file_name, error=str(exc))

    logger.info("Embedded %d chunk(s) for %s", total_chunks, file_name)
    return IngestionResult(success=True, chunks_created=total_chunks, file_name=file_name)


async def delete_document(file_name: str, providers: Providers) -> DeletionResult:
    if providers.document_store is None:
        return DeletionResult(success=False, error="No document store configured")
    try:
        deleted = await providers.document_store.delete_by_file_name(file_name)
    except ProviderError as exc:
        return DeletionResult(success=False, error=str(exc))
    return DeletionResult(success=True, deleted=deleted)


async def list_files(providers: Providers) -> list[FileSummary]:
    if providers.document_store is None:
        return []
    return [FileSummary(**summary) for summary in await providers.document_store.list_files()]
