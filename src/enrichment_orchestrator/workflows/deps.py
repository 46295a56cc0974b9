"""Object graph shared by the workflows of one process."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from enrichment_orchestrator.cache.result_cache import ResultCache
from enrichment_orchestrator.config.settings import ModelRate
from enrichment_orchestrator.dedup.identity import DiscoveryIdentityChecker
from enrichment_orchestrator.dedup.resolver import DuplicateResolver
from enrichment_orchestrator.gateway.base import GenerationBackend
from enrichment_orchestrator.gateway.call_gateway import CallGateway
from enrichment_orchestrator.gateway.openai_responses import OpenAIResponsesBackend
from enrichment_orchestrator.repositories import (
    ChefRepository,
    DuplicateReviewQueue,
    PendingDiscoveryRepository,
    RestaurantRepository,
    ShowRepository,
)
from enrichment_orchestrator.services import (
    ChefBioService,
    RestaurantDiscoveryService,
    ShowDiscoveryService,
    StatusVerificationService,
)
from enrichment_orchestrator.shared.retry import RetryPolicy
from enrichment_orchestrator.shared.token_tracker import TokenTracker
from enrichment_orchestrator.storage.audit import AuditLog
from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.retrying import RetryingRecordStore


@dataclass
class WorkflowDependencies:
    store: RecordStore
    gateway: CallGateway
    tracker: TokenTracker
    cache: ResultCache
    audit: AuditLog
    chefs: ChefRepository
    restaurants: RestaurantRepository
    shows: ShowRepository
    discoveries: PendingDiscoveryRepository
    review_queue: DuplicateReviewQueue
    bio: ChefBioService
    show_discovery: ShowDiscoveryService
    restaurant_discovery: RestaurantDiscoveryService
    status: StatusVerificationService
    model: str
    rate_table: dict[str, ModelRate] = field(default_factory=dict)
    budget_ceilings_usd: dict[str, float] = field(default_factory=dict)
    sweep_concurrency: int = 10
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def for_dry_run(self) -> WorkflowDependencies:
        """Same wiring, except generation results are read from the cache but never added."""
        cache = self.cache.read_only()
        gateway = self.gateway.with_cache(cache)
        return replace(
            self,
            cache=cache,
            gateway=gateway,
            bio=ChefBioService(gateway),
            show_discovery=ShowDiscoveryService(gateway),
            restaurant_discovery=RestaurantDiscoveryService(
                gateway, max_restaurants=self.restaurant_discovery.max_restaurants
            ),
            status=StatusVerificationService(gateway),
        )


def build_backend(settings: Any, *, model: str | None = None) -> OpenAIResponsesBackend:
    return OpenAIResponsesBackend(
        api_key=settings.resolved_openai_api_key(),
        model=model or settings.llm_model,
        base_url=settings.llm_base_url,
        timeout_s=settings.llm_timeout_s,
    )


def build_dependencies(
    *,
    store: RecordStore,
    backend: GenerationBackend,
    settings: Any,
    adjudication_backend: GenerationBackend | None = None,
    tracker: TokenTracker | None = None,
) -> WorkflowDependencies:
    """Wire repositories and services around one store and one usage tracker.

    Without ``adjudication_backend`` the duplicate arbiter shares ``backend``.
    Every store call goes through the same retry schedule as external calls.
    """
    tracker = tracker or TokenTracker(model=backend.model)
    retry_policy = RetryPolicy.from_settings(settings)
    store = RetryingRecordStore(store, policy=retry_policy)
    cache = ResultCache(store, ttl_days=settings.cache_ttl_days)
    gateway = CallGateway(backend, tracker=tracker, cache=cache, retry_policy=retry_policy)
    arbiter = CallGateway(
        adjudication_backend or backend, tracker=tracker, cache=cache, retry_policy=retry_policy
    )
    audit = AuditLog(store)
    review_queue = DuplicateReviewQueue(store)
    source = settings.audit_source

    return WorkflowDependencies(
        store=store,
        gateway=gateway,
        tracker=tracker,
        cache=cache,
        audit=audit,
        chefs=ChefRepository(store, audit=audit, source=source),
        restaurants=RestaurantRepository(
            store,
            resolver=DuplicateResolver(arbiter),
            audit=audit,
            review_queue=review_queue,
            source=source,
        ),
        shows=ShowRepository(store),
        discoveries=PendingDiscoveryRepository(
            store, identity=DiscoveryIdentityChecker(store), audit=audit, source=source
        ),
        review_queue=review_queue,
        bio=ChefBioService(gateway),
        show_discovery=ShowDiscoveryService(gateway),
        restaurant_discovery=RestaurantDiscoveryService(
            gateway, max_restaurants=settings.max_restaurants
        ),
        status=StatusVerificationService(gateway),
        model=backend.model,
        rate_table=dict(settings.model_rates),
        budget_ceilings_usd=dict(settings.budget_ceilings_usd),
        sweep_concurrency=settings.sweep_concurrency,
        retry_policy=retry_policy,
    )
