"""
Service initialization and dependency injection for CarBot API.

Creates and manages all service instances used by the API.
"""

import logging
from typing import Optional

from config.settings import get_settings, Settings
from database import session as db_session
from lead_scoring.scoring_model import LeadScorer
from lead_scoring.score_sink import InMemoryScoreSink, ScoreSink
from lead_scoring.db_score_sink import DbScoreSink

from .cache import CacheStore, create_cache_store

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.score_sink: Optional[ScoreSink] = None
        self.lead_scorer: Optional[LeadScorer] = None
        self.cache: Optional[CacheStore] = None
        self._initialized = False

    def initialize(self):
        """Initialize all services."""
        if self._initialized:
            return

        self.settings = get_settings()
        self._init_cache()
        self._init_lead_scoring()
        self._initialized = True
        logger.info("All services initialized successfully")

    def reset(self):
        """Drop all service instances (used on shutdown and in tests)."""
        self.__init__()

    def _init_cache(self):
        """Initialize the query cache."""
        s = self.settings
        self.cache = create_cache_store(
            s.redis_url, default_ttl=s.cache_ttl_seconds, max_keys=s.cache_max_keys, prefix="carbot:query:"
        )

    def _init_lead_scoring(self):
        """Initialize the scorer and its score sink."""
        if db_session.is_initialized():
            self.score_sink = DbScoreSink(db_session.get_session_factory())
            logger.info("Lead scores persisted to database")
        else:
            self.score_sink = InMemoryScoreSink()
            logger.warning("No database configured, lead scores kept in memory")

        self.lead_scorer = LeadScorer(
            sink=self.score_sink,
            default_job_value=self.settings.default_job_value,
        )
        logger.info("Lead scoring services ready")

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.lead_scorer is not None

    @property
    def has_database(self) -> bool:
        return db_session.is_initialized()

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "database": self.has_database,
            "lead_scoring": self.lead_scorer is not None,
            "cache": type(self.cache).__name__ if self.cache is not None else None,
        }


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def initialize_services():
    """Initialize all services (called at startup)."""
    _services.initialize()
