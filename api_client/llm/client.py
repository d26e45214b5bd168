"""LLM client protocol and its LangChain-backed implementation."""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from langchain_core.messages import HumanMessage, SystemMessage

from models.config import NarratorConfig

logger = logging.getLogger(__name__)


class LLMClient(Protocol):
    def complete(self, system: str, user: str) -> str:
        ...


def create_chat_model(config: NarratorConfig):
    """Instantiate the LangChain chat model named by *config*."""
    provider = config.llm_provider.lower()

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=config.llm_model,
            temperature=config.temperature,
            request_timeout=60,
        )
    elif provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(
            model=config.llm_model,
            temperature=config.temperature,
        )
    else:
        raise ValueError(
            f"Unsupported LLM provider '{provider}'. "
            f"Supported: 'openai', 'anthropic'."
        )


class LangChainLLMClient:
    """Single system + user turn against a LangChain chat model.

    Retries ``config.max_retries`` times with exponential backoff (1s, 2s,
    4s, ...). When every attempt fails it returns ``"{}"`` so callers that
    parse JSON fall through to their empty-result path.
    """

    def __init__(
        self,
        config: NarratorConfig,
        llm=None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.model_name = config.llm_model
        self._llm = llm if llm is not None else create_chat_model(config)
        self._sleep = sleep

    def complete(self, system: str, user: str) -> str:
        attempts = self.config.max_retries
        for attempt in range(attempts):
            try:
                response = self._llm.invoke([
                    SystemMessage(content=system),
                    HumanMessage(content=user),
                ])
                content = response.content
                return content if isinstance(content, str) else str(content)
            except Exception as e:
                wait = 2 ** attempt
                if attempt < attempts - 1:
                    logger.warning(
                        "LLM call failed (%s), retrying in %ds (attempt %d/%d).",
                        type(e).__name__,
                        wait,
                        attempt + 1,
                        attempts,
                    )
                    self._sleep(wait)
                else:
                    logger.error("LLM call failed after %d attempts: %s", attempts, e)
        return "{}"
