"""
LLM Module for the Yuvna advisory assistant.

This module handles:
- LLM provider abstraction (Anthropic, OpenAI, Gemini)
- Prompt template management
- Advisor replies and property recommendations with limited-mode fallback
"""

from .advisor import (
    AdvisoryResult,
    AdvisoryService,
    PropertyRecommendation,
    RecommendationResult,
    buyer_context,
)
from .prompt_templates import PromptTemplates, PromptType
from .providers import LLMError, available_providers, create_provider

__all__ = [
    "AdvisoryResult",
    "AdvisoryService",
    "PropertyRecommendation",
    "RecommendationResult",
    "buyer_context",
    "PromptTemplates",
    "PromptType",
    "LLMError",
    "available_providers",
    "create_provider",
]
