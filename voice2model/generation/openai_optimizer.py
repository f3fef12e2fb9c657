"""OpenAI chat-completions prompt optimizer."""

import asyncio
import logging

import aiohttp

from .base import PromptOptimizer
from .._http import read_error_message
from ..errors import PromptOptimizationError

logger = logging.getLogger(__name__)


class OpenAIPromptOptimizer(PromptOptimizer):
    """Sends a system instruction plus the user's text to ChatGPT and returns the reply."""

    def __init__(self,
                 api_key: str,
                 model: str = "gpt-4",
                 max_tokens: int = 100,
                 temperature: float = 0.7,
                 base_url: str = "https://api.openai.com/v1",
                 timeout_seconds: float = 60.0):
        """Initialize prompt optimizer.

        Args:
            api_key: OpenAI API key
            model: ChatGPT model to use
            max_tokens: Maximum tokens in the refined prompt
            temperature: Temperature for response generation (0.0 to 1.0)
            base_url: API root, overridable for tests
            timeout_seconds: Total timeout for one request
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        logger.info(f"OpenAIPromptOptimizer initialized with model: {model}")

    async def optimize(self, prompt: str, system_instruction: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        data = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt}
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.url, headers=headers, json=data) as response:
                    if response.status != 200:
                        message = await read_error_message(response)
                        raise PromptOptimizationError(message, status=response.status)

                    result = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PromptOptimizationError(f"OpenAI request failed: {e}") from e

        try:
            return result["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise PromptOptimizationError(f"Malformed chat completion payload: {result!r}") from e
