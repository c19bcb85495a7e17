"""
Anthropic (Claude) LLM Provider.
"""

import logging
from typing import List, Dict, Optional

import anthropic

from .base import JSON_INSTRUCTION, LLMError, strip_code_fences

logger = logging.getLogger(__name__)


class AnthropicProvider:
    """
    Anthropic Messages API provider.

    System messages travel in the dedicated `system` field; every other turn
    is mapped to user / assistant.
    """

    name = "anthropic"
    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 30.0,
        max_retries: int = 2,
        client: Optional[anthropic.Anthropic] = None,
    ):
        """
        Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key
            model_id: Claude model ID
            max_tokens: Maximum tokens for response
            temperature: Generation temperature
            timeout: Request timeout in seconds
            max_retries: SDK-level retries on transient errors
            client: Pre-built client (tests)
        """
        self._client = client or anthropic.Anthropic(
            api_key=api_key, timeout=timeout, max_retries=max_retries
        )
        self.model_id = model_id
        self.max_tokens = max_tokens
        self.temperature = temperature

        logger.info(f"Anthropic provider initialized: {model_id}")

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
            messages: List of messages with role and content
            system: System prompt
            temperature: Override temperature
            json_mode: Instruct the model to answer with JSON only

        Returns:
            Generated response
        """
        formatted = [
            {
                "role": "assistant" if msg["role"] == "assistant" else "user",
                "content": msg["content"],
            }
            for msg in messages
            if msg["role"] != "system"
        ]

        system_prompt = system or ""
        if json_mode:
            system_prompt += JSON_INSTRUCTION

        kwargs = {}
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = self._client.messages.create(
                model=self.model_id,
                max_tokens=self.max_tokens,
                temperature=temperature if temperature is not None else self.temperature,
                messages=formatted,
                **kwargs,
            )
        except anthropic.APIError as e:
            logger.error(f"Anthropic generation failed: {e}")
            raise LLMError(str(e), provider=self.name) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text:
            logger.warning("Empty response from Anthropic")
        return strip_code_fences(text)
