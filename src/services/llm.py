import time
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from core.entities import ModelConfig
from core.errors import ConfigurationError, ModelInvocationError
from services.config import Config

logger = logging.getLogger(__name__)


def create_chat_model(model: ModelConfig, config: Config) -> BaseChatModel:
    """
    Build the LangChain chat model for a pool entry.
    ``ollama`` talks to a local Ollama server, ``openrouter`` to the
    OpenAI-compatible OpenRouter API.
    """
    temperature = config.summarization.temperature

    if model.provider == "ollama":
        base_url = config.OLLAMA_BASE_URL
        # ChatOllama uses Ollama's native API, not the OpenAI-compatible /v1 endpoint
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        elif base_url.endswith("/v1/"):
            base_url = base_url[:-4]
        return ChatOllama(
            base_url=base_url.rstrip("/"),
            model=model.id,
            temperature=temperature,
            num_ctx=8192,
        )

    if model.provider == "openrouter":
        if not config.OPENROUTER_API_KEY:
            raise ConfigurationError(
                f"Model '{model.id}' needs OPENROUTER_API_KEY",
                suggestion="Set OPENROUTER_API_KEY in .env",
            )
        return ChatOpenAI(
            model=model.id,
            api_key=config.OPENROUTER_API_KEY,
            base_url=config.OPENROUTER_BASE_URL,
            temperature=temperature,
        )

    raise ConfigurationError(f"Unknown provider '{model.provider}' for model '{model.id}'")


class LLMClient:
    """
    Timeout-bounded chat model client with retry on connection failures.
    """

    def __init__(
        self,
        model: ModelConfig,
        llm: BaseChatModel,
        max_retries: int = 2,
        retry_delay: float = 2.0,
        timeout: float = 120.0,
    ):
        self.model = model
        self.llm = llm
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

    async def _invoke_with_retry(self, messages: List[HumanMessage]) -> Any:
        """
        Invoke the model, retrying only connection failures.
        A timeout is final: the cycle can simply be re-run later.
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                return await asyncio.wait_for(
                    self.llm.ainvoke(messages),
                    timeout=self.timeout,
                )

            except asyncio.TimeoutError as e:
                raise ModelInvocationError(
                    f"Request timed out after {self.timeout}s",
                    model_id=self.model.id,
                    retryable=True,
                ) from e

            except (httpx.ConnectError, ConnectionError) as e:
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries}: Connection error - {e} (model={self.model.id})"
                )
                if attempt == self.max_retries:
                    raise ModelInvocationError(
                        f"Connection failed: {e}",
                        model_id=self.model.id,
                        retryable=True,
                    ) from e

            await asyncio.sleep(self.retry_delay * attempt)

        raise ModelInvocationError("All connection attempts failed", model_id=self.model.id)

    async def evaluate(self, prompt: str) -> Dict[str, Any]:
        """
        Send a prompt and return the response text with its latency.
        """
        start = time.time()

        response = await self._invoke_with_retry([HumanMessage(content=prompt)])

        latency_ms = int((time.time() - start) * 1000)

        return {
            "content": response.content if isinstance(response.content, str) else str(response.content),
            "latency_ms": latency_ms,
        }


def build_clients(config: Config, models: Optional[List[ModelConfig]] = None) -> Dict[str, LLMClient]:
    """LLMClient per model id for the configured pool."""
    clients = {}
    for model in models if models is not None else config.models:
        clients[model.id] = LLMClient(
            model=model,
            llm=create_chat_model(model, config),
            timeout=config.summarization.model_timeout,
        )
    return clients
