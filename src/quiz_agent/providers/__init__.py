import os
from typing import Optional

from dotenv import load_dotenv

from quiz_agent.configuration import WorkflowConfiguration
from quiz_agent.providers.base import (
    ChunkHit,
    DocumentStore,
    Embedder,
    Prompt,
    Providers,
    TextGenerator,
    VectorSearch,
)
from quiz_agent.providers.embeddings import HttpEmbedder, normalise_embedding
from quiz_agent.providers.llm import ChatModelGenerator, openai_compatible_chat_model
from quiz_agent.providers.memory_store import InMemoryDocumentStore, cosine_similarity
from quiz_agent.providers.supabase_store import SupabaseDocumentStore, supabase_client_from_env


def build_default_providers(config: Optional[WorkflowConfiguration] = None) -> Providers:
    """
    Construct the production capability set from environment variables (.env honoured).

    Generator: OpenAI-compatible chat endpoint. Embeddings: HTTP endpoint.
    Store + search: Supabase when SUPABASE_URL is set, otherwise in-memory.
    """
    load_dotenv()
    cfg = config or WorkflowConfiguration()

    generator = ChatModelGenerator(
        openai_compatible_chat_model(cfg.model_name, temperature=cfg.temperature),
        name=cfg.model_name,
    )
    embedder = HttpEmbedder(dimensions=cfg.embedding_dimensions)

    if os.getenv("SUPABASE_URL"):
        store = SupabaseDocumentStore(supabase_client_from_env())
    else:
        store = InMemoryDocumentStore()

    return Providers(
        generator=generator,
        embedder=embedder,
        vector_search=store,
        document_store=store,
    )


__all__ = [
    # Interfaces
    "ChunkHit",
    "DocumentStore",
    "Embedder",
    "Prompt",
    "Providers",
    "TextGenerator",
    "VectorSearch",
    # Adapters
    "ChatModelGenerator",
    "HttpEmbedder",
    "InMemoryDocumentStore",
    "SupabaseDocumentStore",
    # Helpers
    "build_default_providers",
    "cosine_similarity",
    "normalise_embedding",
    "openai_compatible_chat_model",
    "supabase_client_from_env",
]
