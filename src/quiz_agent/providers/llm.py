"""
TextGenerator backed by a LangChain chat model.

Any ``BaseChatModel`` works; ``openai_compatible_chat_model`` builds the default
``ChatOpenAI`` client pointed at an OpenAI-compatible endpoint.

Structured requests use ``with_structured_output(schema)`` so the core only ever sees
validated pydantic objects. Transport errors, schema violations and empty parses
all surface as a single ProviderError.
"""

from __future__ import annotations

import logging
import os
from typing import Optional, Type, Union

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from quiz_agent.errors import ProviderError
from quiz_agent.providers.base import Prompt, TextGenerator

logger = logging.getLogger(__name__)


def openai_compatible_chat_model(
    model_name: str,
    temperature: float = 0.7,
    **kwargs,
) -> ChatOpenAI:
    """ChatOpenAI client configured from LLM_API_KEY / LLM_BASE_URL (OpenAI defaults otherwise)."""
    return ChatOpenAI(
        model=model_name,
        api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
        base_url=os.getenv("LLM_BASE_URL") or None,
        temperature=temperature,
        **kwargs,
    )


def _as_messages(prompt: Prompt) -> list:
    if isinstance(prompt, str):
        return [{"role": "user", "content": prompt}]
    return list(prompt)


class ChatModelGenerator(TextGenerator):
    """Adapter from a LangChain chat model to the TextGenerator interface."""

    def __init__(self, llm: BaseChatModel, name: str = "chat_model") -> None:
        self.llm = llm
        self.name = name

    async def generate(
        self,
        prompt: Prompt,
        schema: Optional[Type[BaseModel]] = None,
    ) -> Union[str, BaseModel]:
        messages = _as_messages(prompt)
        try:
            if schema is None:
                response = await self.llm.ainvoke(messages)
                content = response.content
                if isinstance(content, list):
                    # Some providers return content blocks
                    content = "".join(
                        block.get("text", "") if isinstance(block, dict) else str(block)
                        for block in content
                    )
                return content

            structured_llm = self.llm.with_structured_output(schema)
            result = await structured_llm.ainvoke(messages)
        except Exception as exc:
            logger.warning("Generation via %s failed: %s", self.name, exc)
            raise ProviderError(f"{type(exc).__name__}: {exc}", provider=self.name) from exc

        if result is None:
            raise ProviderError(
                f"Model returned no parseable {schema.__name__}", provider=self.name
            )
        if isinstance(result, dict):
            # Raw-JSON structured modes return dicts; validate at the boundary
            try:
                result = schema.model_validate(result)
            except Exception as exc:
                raise ProviderError(
                    f"Output did not match {schema.__name__}: {exc}", provider=self.name
                ) from exc
        return result
