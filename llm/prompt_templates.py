"""
Prompt Templates for the Yuvna advisory assistant.

Manages the system and user prompts sent to the LLM providers.
"""

from enum import Enum
from typing import Any, Dict, Optional


class PromptType(Enum):
    """Types of prompts."""
    ADVISOR = "advisor"
    RECOMMENDATIONS = "recommendations"


class PromptTemplates:
    """
    Manages prompt templates for the advisory assistant.

    Templates are written for Dubai residential investment with an
    agent-handoff focus.
    """

    # System prompts
    SYSTEM_PROMPTS = {
        PromptType.ADVISOR: """You are a friendly, professional Dubai real estate investment advisor for {brand_name}.

BUYER CONTEXT:
- Persona: {persona}
- Budget: {budget}
- Goal: {goal}

YOUR ROLE:
1. Help buyers understand Dubai real estate investment
2. Answer questions about areas, yields, visa options, and process
3. Recommend using the ROI Calculator for specific projections
4. Suggest property recommendations based on their profile
5. When the buyer wants to visit, call or book, acknowledge it and offer to connect them with an agent

KEY KNOWLEDGE:
- Golden Visa: AED 2M+ investment = 10-year visa
- Property Visa: AED 750K+ = 2-year visa
- Prime areas (Downtown, Marina): 5-6% yield, stable appreciation
- Growth areas (JVC, Dubai South): 7-8.5% yield, higher appreciation
- Off-plan: Lower entry, payment plans, but delivery risk

COMMUNICATION STYLE:
- Warm and professional
- Use emojis sparingly (1-2 per message)
- Keep responses concise (2-4 paragraphs max)
- Always offer a next step or question
- Never promise returns; yields and appreciation are estimates""",

        PromptType.RECOMMENDATIONS: """You are a Dubai real estate recommendation engine. Generate {count} property investment recommendations.

Return ONLY a JSON object with this exact structure (no additional text):
{{
  "recommendations": [
    {{
      "id": "unique-id",
      "property_type": "1br" | "2br" | "3br" | "studio" | "townhouse" | "villa" | "penthouse",
      "status": "ready" | "off-plan",
      "area_cluster": "prime" | "growth-corridor" | "family-hub" | "waterfront" | "emerging",
      "strategy": "rent" | "flip" | "hold",
      "risk_score": 1-10 (integer),
      "expected_yield": 5.0-9.0 (realistic percentage),
      "expected_appreciation": 3.0-15.0 (realistic percentage),
      "price_range": {{ "min": number, "max": number }},
      "why_it_fits": "2-3 sentence explanation",
      "pros": ["advantage 1", "advantage 2", "advantage 3"],
      "cons": ["consideration 1", "consideration 2"]
    }}
  ]
}}

RULES:
- Make recommendations personalized to the buyer profile
- Use realistic Dubai market data
- Vary the risk levels and strategies
- Include both ready and off-plan options
- For visa-driven buyers, include Golden Visa eligible options (2M+ AED)""",
    }

    # User prompt templates
    USER_TEMPLATES = {
        "recommendations": """Generate recommendations for:
- Persona: {persona}
- Budget: {budget}
- Goal: {goal}
- Country: {country}""",
    }

    # Values used when the buyer has not told us yet
    ADVISOR_DEFAULTS = {
        "persona": "Not yet determined",
        "budget": "Not specified",
        "goal": "General interest",
    }

    RECOMMENDATION_DEFAULTS = {
        "persona": "explorer",
        "budget": "500k-1m",
        "goal": "investment",
        "country": "International",
    }

    @staticmethod
    def _fill(context: Optional[Dict[str, Any]], defaults: Dict[str, str]) -> Dict[str, str]:
        context = context or {}
        return {key: context.get(key) or default for key, default in defaults.items()}

    @classmethod
    def get_system_prompt(
        cls,
        prompt_type: PromptType = PromptType.ADVISOR,
        brand_name: str = "Yuvna Realty",
        buyer_context: Optional[Dict[str, Any]] = None,
        count: int = 5,
        custom_instructions: Optional[str] = None,
    ) -> str:
        """
        Get system prompt for a given type.

        Args:
            prompt_type: Type of prompt
            brand_name: Brand name to use
            buyer_context: persona / budget / goal of the buyer (advisor prompt)
            count: Number of recommendations to request
            custom_instructions: Additional custom instructions

        Returns:
            Formatted system prompt
        """
        template = cls.SYSTEM_PROMPTS[prompt_type]

        if prompt_type == PromptType.ADVISOR:
            prompt = template.format(brand_name=brand_name, **cls._fill(buyer_context, cls.ADVISOR_DEFAULTS))
        else:
            prompt = template.format(count=count)

        if custom_instructions:
            prompt += f"\n\nAdditional instructions:\n{custom_instructions}"

        return prompt

    @classmethod
    def build_recommendations_prompt(cls, buyer_context: Optional[Dict[str, Any]] = None) -> str:
        """Build the user prompt describing the buyer for recommendations."""
        return cls.USER_TEMPLATES["recommendations"].format(
            **cls._fill(buyer_context, cls.RECOMMENDATION_DEFAULTS)
        )
