"""
Google Gemini LLM Provider (REST generateContent endpoint).
"""

import logging
from typing import List, Dict, Optional

import httpx

from .base import JSON_INSTRUCTION, LLMError, strip_code_fences

logger = logging.getLogger(__name__)


class GeminiProvider:
    """
    Gemini provider over the public REST API.

    Gemini has no system role here, so the system prompt is sent as a leading
    user turn followed by a short model acknowledgement.
    """

    name = "gemini"
    DEFAULT_MODEL = "gemini-2.0-flash"
    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(
        self,
        api_key: str,
        model_id: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 30.0,
        max_retries: int = 2,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Gemini / Google API key
            model_id: Gemini model ID
            max_tokens: Maximum output tokens
            temperature: Generation temperature
            timeout: Request timeout in seconds
            max_retries: Extra attempts on 429 / 5xx / transport errors
            client: Pre-built httpx client (tests)
        """
        self.api_key = api_key
        self.model_id = model_id
        self.max_retries = max_retries
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or httpx.Client(timeout=timeout)

        logger.info(f"Gemini provider initialized: {model_id}")

    def _build_contents(self, messages: List[Dict[str, str]], system: Optional[str], json_mode: bool):
        contents = [
            {
                "role": "user" if msg["role"] == "user" else "model",
                "parts": [{"text": msg["content"]}],
            }
            for msg in messages
            if msg["role"] != "system"
        ]
        if system:
            instruction = f"System Instructions:\n{system}"
            if json_mode:
                instruction += JSON_INSTRUCTION
            contents[0:0] = [
                {"role": "user", "parts": [{"text": instruction}]},
                {"role": "model", "parts": [{"text": "Understood. I will follow these instructions."}]},
            ]
        return contents

    def _post_with_retries(self, payload: dict) -> dict:
        url = f"{self.BASE_URL}/{self.model_id}:generateContent"
        attempt = 0
        while True:
            try:
                response = self._client.post(url, params={"key": self.api_key}, json=payload)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                # Only rate limits and server errors are worth another attempt
                if (status == 429 or status >= 500) and attempt < self.max_retries:
                    attempt += 1
                    logger.warning(f"Gemini returned {status}, retrying ({attempt}/{self.max_retries})")
                    continue
                logger.error(f"Gemini API error {status}: {e.response.text[:500]}")
                raise LLMError(f"HTTP {status}", provider=self.name) from e
            except httpx.TransportError as e:
                if attempt < self.max_retries:
                    attempt += 1
                    logger.warning(f"Gemini request failed ({e}), retrying ({attempt}/{self.max_retries})")
                    continue
                logger.error(f"Gemini request failed: {e}")
                raise LLMError(str(e), provider=self.name) from e

    def generate(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
    ) -> str:
        """Generate response with conversation history."""
        generation_config = {
            "temperature": temperature if temperature is not None else self.temperature,
            "maxOutputTokens": self.max_tokens,
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload = {
            "contents": self._build_contents(messages, system, json_mode),
            "generationConfig": generation_config,
        }

        data = self._post_with_retries(payload)

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError("Malformed Gemini response", provider=self.name) from e
        return strip_code_fences(text)
