"""
LLM client for text-based AI operations.
Model-agnostic interface with retry and fallback across model identifiers.
"""
import asyncio
from typing import Awaitable, Callable, List, Dict, Optional

import httpx

from nutriplan.core.base_client import BaseAIClient
from nutriplan.core.exceptions import AIUnavailableError
from nutriplan.core.logging import get_logger

logger = get_logger("core.llm_client")


def _status_of(error: BaseException) -> Optional[int]:
    """HTTP status carried by an error, if any."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return getattr(error, "status_code", None)


def is_retriable(error: BaseException) -> bool:
    """4xx errors other than rate limiting are not worth retrying on the same model."""
    status = _status_of(error)
    if status is not None and 400 <= status < 500 and status != 429:
        return False
    return True


class LLMClient(BaseAIClient):
    """Client for interacting with Language Models."""

    def __init__(self, settings=None, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        super().__init__(settings)
        self.models: List[str] = list(self.settings.llm_models)
        self.max_retries = self.settings.llm_max_retries
        self.backoff_base = self.settings.llm_backoff_base_seconds
        self._sleep = sleep

    async def _call_model(
        self,
        model: str,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None
    ) -> str:
        """Call the Ollama generate API for a single model."""
        url = f"{self.settings.llm_base_url}/api/generate"

        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False
        }

        if system:
            payload["system"] = system
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        response_json = await self._make_request(url, payload, log_prefix="LLM Client")
        return response_json["response"]

    async def generate_with_fallback(
        self,
        prompt: str,
        models: Optional[List[str]] = None,
        system: Optional[str] = None,
        temperature: Optional[float] = None
    ) -> str:
        """
        Generate text, retrying each model with exponential backoff before
        moving on to the next one.

        Args:
            prompt: Prompt text
            models: Ordered model identifiers (defaults to configured models)
            system: Optional system prompt
            temperature: Optional sampling temperature

        Returns:
            Raw response text from the first model that answers

        Raises:
            AIUnavailableError: If the client is not configured or all
                models and attempts failed
        """
        if not self.is_initialized:
            raise AIUnavailableError("AI client not initialized - LLM base URL missing")

        model_names = models or self.models
        last_error: Optional[BaseException] = None

        for model in model_names:
            for attempt in range(self.max_retries):
                try:
                    logger.info(f"Attempting model {model}, attempt {attempt + 1}/{self.max_retries}")
                    return await self._call_model(model, prompt, system=system, temperature=temperature)
                except (httpx.HTTPError, KeyError, ValueError) as e:
                    last_error = e
                    logger.warning(f"Model {model} attempt {attempt + 1} failed: {e}")

                    if not is_retriable(e):
                        logger.error(f"Non-retriable error from model {model}: {e}")
                        break

                    if attempt + 1 < self.max_retries:
                        backoff = self.backoff_base * (2 ** attempt)
                        await self._sleep(backoff)

            logger.info(f"Switching to next model after failures for {model}")

        raise AIUnavailableError(
            f"AI generation failed after trying {len(model_names)} model(s): {last_error}",
            last_error=last_error
        )

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        system: Optional[str] = None
    ) -> str:
        """
        Chat-style interaction with the LLM.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0.0-1.0)
            system: Optional system prompt

        Returns:
            LLM response text
        """
        prompt_parts = []
        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if role == "user":
                prompt_parts.append(f"User: {content}")
            elif role == "assistant":
                prompt_parts.append(f"Assistant: {content}")

        prompt_parts.append("Assistant:")
        prompt = "\n\n".join(prompt_parts)

        return await self.generate_with_fallback(prompt, system=system, temperature=temperature)
