"""
Service initialization and dependency injection for the Yuvna API.

Creates and manages all service instances used by the API.
"""

import logging
from typing import Optional

from config.settings import get_settings, Settings
from database.store import RecordStore, SqlRecordStore
from database.supabase_store import SupabaseRecordStore
from lead_intelligence import LeadIntelligenceEngine, LeadPolicy
from llm.advisor import AdvisoryService
from llm.providers import LLMProvider, ProviderNotConfiguredError, available_providers, create_provider

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.engine: Optional[LeadIntelligenceEngine] = None
        self.provider: Optional[LLMProvider] = None
        self.advisor: Optional[AdvisoryService] = None
        self.store: Optional[RecordStore] = None
        self._initialized = False

    def initialize(
        self,
        settings: Optional[Settings] = None,
        session_factory=None,
        store: Optional[RecordStore] = None,
        provider: Optional[LLMProvider] = None,
    ):
        """
        Initialize all services.

        Args:
            settings: Settings override (defaults to get_settings())
            session_factory: SQLAlchemy session factory for the sql backend
            store: Pre-built record store (overrides the configured backend)
            provider: Pre-built LLM provider (overrides the configured one)
        """
        self.settings = settings or get_settings()
        s = self.settings

        self.engine = LeadIntelligenceEngine(policy=LeadPolicy.from_settings(s))
        logger.info(
            f"Lead engine ready (thresholds {s.lead_threshold_ready_to_call}/"
            f"{s.lead_threshold_hot}/{s.lead_threshold_warm})"
        )

        self.provider = provider if provider is not None else self._init_provider()
        self.advisor = AdvisoryService(provider=self.provider, brand_name=s.brand_name)

        self.store = store if store is not None else self._init_store(session_factory)
        self._initialized = True

    def _init_provider(self) -> Optional[LLMProvider]:
        try:
            provider = create_provider(self.settings)
        except ProviderNotConfiguredError as e:
            logger.warning(f"{e}; advisory replies will run in limited mode")
            return None
        logger.info(f"LLM provider ready: {provider.name}")
        return provider

    def _init_store(self, session_factory) -> Optional[RecordStore]:
        s = self.settings
        if s.is_supabase:
            logger.info("Using Supabase record store")
            return SupabaseRecordStore(url=s.supabase_url, key=s.supabase_key)
        if session_factory is None:
            logger.warning("No database session factory, persistence disabled")
            return None
        logger.info("Using SQL record store")
        return SqlRecordStore(session_factory)

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.engine is not None and self.store is not None

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "engine": self.engine is not None,
            "store": type(self.store).__name__ if self.store else None,
            "llm_provider": getattr(self.provider, "name", None),
        }

    def providers(self) -> dict:
        """Which LLM providers have credentials configured."""
        return available_providers(self.settings or get_settings())


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def initialize_services(**kwargs):
    """Initialize all services (called at startup)."""
    _services.initialize(**kwargs)
