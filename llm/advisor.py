"""
Advisory Service for the Yuvna assistant.

Wraps the configured LLM provider with the advisor prompts. Provider
failures never reach the caller: the service degrades to fixed fallback
content and flags the result as limited mode.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from lead_intelligence.models import BuyerProfile
from .prompt_templates import PromptTemplates, PromptType
from .providers import LLMError, LLMProvider

logger = logging.getLogger(__name__)


FALLBACK_ADVISORY_TEXT = (
    "I apologize, but I'm having trouble connecting right now. Please try again in a moment, "
    "or feel free to explore our ROI Calculator or Property Recommendations while I get back online."
)

HISTORY_LIMIT = 10

_ROLE_MAP = {"buyer": "user", "advisor": "assistant"}


class PriceRange(BaseModel):
    min: float
    max: float


class PropertyRecommendation(BaseModel):
    """One recommended investment option."""

    id: str
    property_type: str
    status: str
    area_cluster: str
    strategy: str
    risk_score: int = Field(ge=1, le=10)
    expected_yield: float
    expected_appreciation: float
    price_range: PriceRange
    why_it_fits: str
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)


FALLBACK_RECOMMENDATIONS = [
    PropertyRecommendation(
        id="1",
        property_type="1br",
        status="ready",
        area_cluster="growth-corridor",
        strategy="rent",
        risk_score=3,
        expected_yield=7.5,
        expected_appreciation=8,
        price_range=PriceRange(min=400000, max=600000),
        why_it_fits="High rental demand in growth corridor. Great for first-time investors seeking stable yields.",
        pros=["High rental yield", "Low entry point", "Strong tenant demand"],
        cons=["Smaller unit", "Lower appreciation vs prime"],
    ),
    PropertyRecommendation(
        id="2",
        property_type="2br",
        status="off-plan",
        area_cluster="emerging",
        strategy="hold",
        risk_score=6,
        expected_yield=5.5,
        expected_appreciation=12,
        price_range=PriceRange(min=700000, max=950000),
        why_it_fits="Emerging area with infrastructure investment. Payment plan available during construction.",
        pros=["High growth potential", "Payment plans", "Modern amenities"],
        cons=["Delivery risk", "Area still developing"],
    ),
    PropertyRecommendation(
        id="3",
        property_type="2br",
        status="ready",
        area_cluster="prime",
        strategy="rent",
        risk_score=4,
        expected_yield=5.8,
        expected_appreciation=6,
        price_range=PriceRange(min=1500000, max=2200000),
        why_it_fits="Prime location with strong resale value. Popular with expats and tourists.",
        pros=["Prime location", "Strong resale", "Premium tenants"],
        cons=["Higher entry price", "Lower yield"],
    ),
]


@dataclass
class AdvisoryResult:
    """Advisor reply for one buyer turn."""
    text: str
    limited_mode: bool = False
    error: Optional[str] = None
    provider: Optional[str] = None
    processing_time_ms: float = 0.0


@dataclass
class RecommendationResult:
    """Recommendations for one buyer."""
    recommendations: List[PropertyRecommendation] = field(default_factory=list)
    limited_mode: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommendations": [r.model_dump() for r in self.recommendations],
            "limited_mode": self.limited_mode,
            "error": self.error,
        }


def buyer_context(buyer: BuyerProfile) -> Dict[str, Any]:
    """Prompt context for a buyer profile."""
    return {
        "persona": buyer.persona.value if buyer.persona else None,
        "budget": buyer.budget_band.value if buyer.budget_band else None,
        "goal": buyer.goal.value if buyer.goal else None,
        "country": buyer.country or None,
    }


def to_provider_messages(history: List[Dict[str, str]], limit: int = HISTORY_LIMIT) -> List[Dict[str, str]]:
    """
    Map conversation history to provider roles.

    Args:
        history: Messages with role buyer / advisor (system turns are dropped)
        limit: Keep only the most recent N turns

    Returns:
        Messages with role user / assistant
    """
    turns = [m for m in history if m.get("role") in _ROLE_MAP]
    if limit:
        turns = turns[-limit:]
    return [{"role": _ROLE_MAP[m["role"]], "content": m["content"]} for m in turns]


def parse_recommendations(raw: str) -> List[PropertyRecommendation]:
    """
    Parse and validate a recommendations payload.

    Accepts either a bare JSON array or an object with a
    "recommendations" array.

    Raises:
        ValueError: If the payload is not valid JSON or fails validation
    """
    data = json.loads(raw)
    if isinstance(data, dict):
        data = data.get("recommendations")
    if not isinstance(data, list) or not data:
        raise ValueError("Expected a non-empty list of recommendations")
    try:
        return [PropertyRecommendation.model_validate(item) for item in data]
    except ValidationError as e:
        raise ValueError(f"Invalid recommendation: {e}") from e


class AdvisoryService:
    """
    Generates advisor replies and property recommendations.

    A missing provider (no API key configured) is treated like a failing
    one: every call returns fallback content in limited mode.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        brand_name: str = "Yuvna Realty",
        advisory_temperature: float = 0.7,
        recommendation_temperature: float = 0.5,
        recommendation_count: int = 5,
    ):
        self.provider = provider
        self.brand_name = brand_name
        self.advisory_temperature = advisory_temperature
        self.recommendation_temperature = recommendation_temperature
        self.recommendation_count = recommendation_count

    @property
    def provider_name(self) -> Optional[str]:
        return getattr(self.provider, "name", None)

    async def generate_advisory(
        self,
        history: List[Dict[str, str]],
        buyer_context: Optional[Dict[str, Any]] = None,
    ) -> AdvisoryResult:
        """
        Generate the advisor reply for the latest buyer message.

        Args:
            history: Conversation so far, oldest first, ending with the buyer turn
            buyer_context: persona / budget / goal for the system prompt

        Returns:
            AdvisoryResult (limited_mode=True when the fallback text was used)
        """
        start_time = time.time()

        if self.provider is None:
            logger.warning("No LLM provider configured, replying in limited mode")
            return AdvisoryResult(
                text=FALLBACK_ADVISORY_TEXT, limited_mode=True, error="no provider configured"
            )

        system_prompt = PromptTemplates.get_system_prompt(
            PromptType.ADVISOR, brand_name=self.brand_name, buyer_context=buyer_context
        )
        messages = to_provider_messages(history)

        try:
            text = await asyncio.to_thread(
                self.provider.generate,
                messages,
                system=system_prompt,
                temperature=self.advisory_temperature,
            )
        except LLMError as e:
            logger.error(f"Advisory generation failed: {e}")
            return AdvisoryResult(
                text=FALLBACK_ADVISORY_TEXT,
                limited_mode=True,
                error=str(e),
                provider=self.provider_name,
                processing_time_ms=(time.time() - start_time) * 1000,
            )

        if not text.strip():
            logger.warning("LLM returned an empty advisory reply")
            return AdvisoryResult(
                text=FALLBACK_ADVISORY_TEXT,
                limited_mode=True,
                error="empty response",
                provider=self.provider_name,
                processing_time_ms=(time.time() - start_time) * 1000,
            )

        return AdvisoryResult(
            text=text,
            provider=self.provider_name,
            processing_time_ms=(time.time() - start_time) * 1000,
        )

    async def generate_recommendations(
        self,
        buyer_context: Optional[Dict[str, Any]] = None,
    ) -> RecommendationResult:
        """
        Generate personalised property recommendations.

        Args:
            buyer_context: persona / budget / goal / country

        Returns:
            RecommendationResult (fixed list in limited mode)
        """
        if self.provider is None:
            return self._fallback_recommendations("no provider configured")

        system_prompt = PromptTemplates.get_system_prompt(
            PromptType.RECOMMENDATIONS, count=self.recommendation_count
        )
        user_prompt = PromptTemplates.build_recommendations_prompt(buyer_context)

        try:
            raw = await asyncio.to_thread(
                self.provider.generate,
                [{"role": "user", "content": user_prompt}],
                system=system_prompt,
                temperature=self.recommendation_temperature,
                json_mode=True,
            )
            recommendations = parse_recommendations(raw)
        except (LLMError, ValueError) as e:
            logger.error(f"Recommendation generation failed: {e}")
            return self._fallback_recommendations(str(e))

        logger.info(f"Generated {len(recommendations)} recommendations via {self.provider_name}")
        return RecommendationResult(recommendations=recommendations)

    @staticmethod
    def _fallback_recommendations(error: str) -> RecommendationResult:
        return RecommendationResult(
            recommendations=[r.model_copy(deep=True) for r in FALLBACK_RECOMMENDATIONS],
            limited_mode=True,
            error=error,
        )
