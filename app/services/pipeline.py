"""
Wiring for the crawl-and-score pipeline.

Builds one set of collaborators (Job Store, event bus, orchestrator,
ingestion service, worker pool) that the API process and scripts share.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy.orm import Session, sessionmaker

from app.config import (
    BFSSettings,
    CrawlSettings,
    OnboardingSettings,
    get_bfs_settings,
    get_crawl_settings,
    get_onboarding_settings,
)
from app.crawling.fetcher import PageFetcher, RequestsPageFetcher
from app.crawling.registry import StrategyRegistry
from app.crawling.worker import CrawlWorker, CrawlWorkerPool
from app.events import EventTaskExecutor, InProcessEventBus
from app.services.ingestion_service import IngestionService
from app.services.job_store import JobStore
from app.services.onboarding_orchestrator import OnboardingOrchestrator
from bfs.scoring import BrandFidelityScorer
from content_generation.adapter import CompletionClient, build_completion_client

logger = logging.getLogger(__name__)


@dataclass
class CrawlPipeline:
    session_factory: sessionmaker[Session]
    event_bus: InProcessEventBus
    job_store: JobStore
    orchestrator: OnboardingOrchestrator
    ingestion: IngestionService
    fetcher: PageFetcher
    registry: StrategyRegistry
    crawl_settings: CrawlSettings

    def build_worker(self, worker_id: str) -> CrawlWorker:
        return CrawlWorker(
            worker_id=worker_id,
            job_store=self.job_store,
            fetcher=self.fetcher,
            session_factory=self.session_factory,
            registry=self.registry,
        )

    def build_worker_pool(self, *, name_prefix: str = "worker") -> CrawlWorkerPool:
        workers = [
            self.build_worker(f"{name_prefix}-{index + 1}")
            for index in range(self.crawl_settings.worker_count)
        ]
        return CrawlWorkerPool(
            workers,
            poll_interval_seconds=self.crawl_settings.poll_interval_seconds,
        )


def build_scorer(settings: BFSSettings | None = None) -> BrandFidelityScorer:
    resolved = settings or get_bfs_settings()
    return BrandFidelityScorer(
        threshold=resolved.acceptance_threshold,
        floors=resolved.dimension_floors,
    )


def build_pipeline(
    *,
    session_factory: sessionmaker[Session] | None = None,
    fetcher: PageFetcher | None = None,
    completion_client: CompletionClient | None = None,
    crawl_settings: CrawlSettings | None = None,
    onboarding_settings: OnboardingSettings | None = None,
    bfs_settings: BFSSettings | None = None,
    event_executor: EventTaskExecutor | None = None,
) -> CrawlPipeline:
    if session_factory is None:
        from db.session import get_session_factory

        session_factory = get_session_factory()
    crawl_settings = crawl_settings or get_crawl_settings()

    event_bus = InProcessEventBus(executor=event_executor)
    job_store = JobStore(
        session_factory=session_factory,
        settings=crawl_settings,
        publisher=event_bus,
    )
    orchestrator = OnboardingOrchestrator(
        session_factory=session_factory,
        completion_client=completion_client or build_completion_client(),
        scorer=build_scorer(bfs_settings),
        settings=onboarding_settings or get_onboarding_settings(),
    )
    event_bus.subscribe(orchestrator.handle_crawl_completed)

    return CrawlPipeline(
        session_factory=session_factory,
        event_bus=event_bus,
        job_store=job_store,
        orchestrator=orchestrator,
        ingestion=IngestionService(job_store=job_store, settings=crawl_settings),
        fetcher=fetcher
        or RequestsPageFetcher(
            timeout_seconds=crawl_settings.fetch_timeout_seconds,
            user_agent=crawl_settings.user_agent,
        ),
        registry=StrategyRegistry(),
        crawl_settings=crawl_settings,
    )


@lru_cache(maxsize=1)
def get_pipeline() -> CrawlPipeline:
    """
    Return the process-wide pipeline built from environment settings.
    """

    return build_pipeline()
