"""
Provider-neutral LLM interface.

Every adapter takes an ordered list of {role, content} messages with roles
"user" / "assistant", an optional system prompt, and returns plain text.
"""

import re
from typing import Dict, List, Optional, Protocol, runtime_checkable


class LLMError(Exception):
    """Transport or provider failure while generating text."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(f"[{provider}] {message}" if provider else message)


class ProviderNotConfiguredError(LLMError):
    """No API key is configured for the requested provider."""


JSON_INSTRUCTION = "\n\nIMPORTANT: Respond with valid JSON only. No additional text."

_FENCE_START = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_END = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code block, if any."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_END.sub("", _FENCE_START.sub("", text))
    return text.strip()


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol implemented by every provider adapter."""

    name: str

    def generate(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        json_mode: bool = False,
    ) -> str:
        """Generate a reply for the conversation."""
        ...
