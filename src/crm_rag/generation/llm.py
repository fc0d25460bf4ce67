"""LLM initialisation: single place to swap providers.

Supports two modes:

1. **OpenAI cloud** (default): set ``OPENAI_API_KEY``.
2. **OpenAI-compatible endpoint**: set ``LLM_BASE_URL`` to a self-hosted
   server (vLLM, Ollama, …) exposing ``/v1/chat/completions``;
   ``ChatOpenAI`` works unchanged.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from langchain_openai import ChatOpenAI

from crm_rag.config import settings

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

logger = logging.getLogger(__name__)


class AnswerGenerator(Protocol):
    """Anything that turns a chat prompt into answer text."""

    async def generate(self, messages: list[BaseMessage]) -> str: ...


def get_llm(temperature: float = settings.llm_temperature) -> ChatOpenAI:
    """Return the configured chat model.

    When ``settings.llm_base_url`` is set the client is pointed at that
    endpoint instead of the OpenAI cloud API.  A dummy API key
    (``"EMPTY"``) is used because self-hosted servers usually do not
    require authentication.
    """
    kwargs: dict = {
        "model": settings.llm_model_name,
        "temperature": temperature,
    }

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        # LangChain requires a non-empty value.
        kwargs["api_key"] = settings.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key

    return ChatOpenAI(**kwargs)


class ChatModelGenerator:
    """:class:`AnswerGenerator` backed by a LangChain chat model.

    The model is created on first use unless one is passed in.
    """

    def __init__(self, llm: ChatOpenAI | None = None) -> None:
        self._llm = llm

    async def generate(self, messages: list[BaseMessage]) -> str:
        if self._llm is None:
            self._llm = get_llm()
        response = await self._llm.ainvoke(messages)
        content = response.content
        if isinstance(content, str):
            return content
        # Some providers return a list of content blocks.
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
