import os
from dataclasses import dataclass, field
from typing import Optional

from langchain_core.runnables import RunnableConfig


@dataclass(kw_only=True)
class WorkflowConfiguration:
    """Runtime configuration injected via run config (RunnableConfig['configurable'])."""

    model_name: str = field(
        default_factory=lambda: os.getenv("QUIZ_AGENT_MODEL", "gpt-4o-mini")
    )
    temperature: float = 0.7

    # Topic expansion
    min_subtopics: int = 3
    max_subtopics: int = 5

    # Question generation
    questions_per_subtopic: int = 10

    # Retry policy: attempt N waits retry_base_delay * N seconds before attempt N + 1
    max_retries: int = 2
    retry_base_delay: float = 1.0

    # Executor
    max_steps: int = 25
    max_input_length: int = 500
    supervisor_log_window: int = 5

    # Retrieval / ingestion
    retrieval_top_k: int = 5
    chunk_size: int = 1000
    chunk_overlap: int = 200
    embedding_dimensions: int = field(
        default_factory=lambda: int(os.getenv("EMBEDDING_DIMENSIONS", "768"))
    )

    @classmethod
    def from_runnable_config(
        cls, config: Optional[RunnableConfig] = None
    ) -> "WorkflowConfiguration":
        configurable = (config or {}).get("configurable", {})
        return cls(
            **{k: v for k, v in configurable.items() if k in cls.__dataclass_fields__}
        )
