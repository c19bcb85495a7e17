"""
OpenAI LLM Provider.
"""

import logging
from typing import List, Dict, Optional

from openai import OpenAI, OpenAIError

from .base import LLMError, strip_code_fences

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """
    OpenAI LLM provider.

    Supports GPT-4o family chat models.
    """

    name = "openai"
    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 30.0,
        max_retries: int = 2,
        client: Optional[OpenAI] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model_id: Model ID
            max_tokens: Maximum tokens
            temperature: Generation temperature
            timeout: Request timeout in seconds
            max_retries: SDK-level retries on transient errors
            client: Pre-built client (tests)
        """
        self._client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)
        self.model_id = model_id
        self.max_tokens = max_tokens
        self.temperature = temperature

        logger.info(f"OpenAI provider initialized: {model_id}")

    def generate(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
    ) -> str:
        """
        Generate response with conversation history.

        Args:
            messages: List of messages
            system: System prompt
            temperature: Override temperature
            json_mode: Constrain the reply to a JSON object

        Returns:
            Generated response
        """
        formatted = []
        if system:
            formatted.append({"role": "system", "content": system})
        formatted.extend(messages)

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self._client.chat.completions.create(
                model=self.model_id,
                messages=formatted,
                max_tokens=self.max_tokens,
                temperature=temperature if temperature is not None else self.temperature,
                **kwargs,
            )
        except OpenAIError as e:
            logger.error(f"OpenAI generation failed: {e}")
            raise LLMError(str(e), provider=self.name) from e

        content = response.choices[0].message.content or ""
        return strip_code_fences(content) if json_mode else content.strip()
