"""
Centralized configuration for the Yuvna lead intelligence service.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # Brand
    brand_name: str = Field(default="Yuvna Realty")

    # LLM provider selection: anthropic | openai | gemini | auto
    llm_provider: str = Field(default="auto")
    max_tokens: int = Field(default=4096)
    temperature: float = Field(default=0.7)
    llm_timeout_seconds: float = Field(default=30.0)
    llm_max_retries: int = Field(default=2)

    # Anthropic
    anthropic_api_key: Optional[str] = Field(default=None)
    anthropic_model: str = Field(default="claude-sonnet-4-20250514")

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None)
    openai_llm_model: str = Field(default="gpt-4o-mini")

    # Gemini
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    gemini_model: str = Field(default="gemini-2.0-flash")

    # Lead classification thresholds (urgency score)
    lead_threshold_ready_to_call: int = Field(default=80)
    lead_threshold_hot: int = Field(default=65)
    lead_threshold_warm: int = Field(default=35)
    recent_signal_window: int = Field(default=3)

    # Score decay
    decay_grace_days: int = Field(default=3)
    urgency_decay_per_day: int = Field(default=2)
    engagement_decay_per_day: int = Field(default=0)

    # Escalation
    escalation_signals: str = Field(default="call_request,booking_intent,planning_visit")
    agent_ids: str = Field(default="")

    # Persistence: sql | supabase
    storage_backend: str = Field(default="sql")
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./yuvna.db")
    supabase_url: Optional[str] = Field(default=None)
    supabase_key: Optional[str] = Field(default=None)

    # API
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_title: str = Field(default="Yuvna Lead Intelligence API")
    api_version: str = Field(default="1.0.0")
    cors_origins: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"
        populate_by_name = True

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def escalation_signals_list(self) -> List[str]:
        return [s.strip() for s in self.escalation_signals.split(",") if s.strip()]

    @property
    def agent_ids_list(self) -> List[str]:
        return [a.strip() for a in self.agent_ids.split(",") if a.strip()]

    @property
    def is_supabase(self) -> bool:
        return self.storage_backend.lower() == "supabase"


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
