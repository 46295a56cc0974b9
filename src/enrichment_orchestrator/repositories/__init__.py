"""Entity repositories."""

from enrichment_orchestrator.repositories.chef_repository import ChefRepository
from enrichment_orchestrator.repositories.discovery_repository import (
    DiscoveryBatchResult,
    DiscoveryInput,
    DiscoveryInsertResult,
    PendingDiscoveryRepository,
)
from enrichment_orchestrator.repositories.restaurant_repository import (
    RestaurantRepository,
    RestaurantSaveResult,
)
from enrichment_orchestrator.repositories.review_queue import DuplicateReviewQueue
from enrichment_orchestrator.repositories.show_repository import ChefShowSaveResult, ShowRepository

__all__ = [
    "ChefRepository",
    "ChefShowSaveResult",
    "DiscoveryBatchResult",
    "DiscoveryInput",
    "DiscoveryInsertResult",
    "DuplicateReviewQueue",
    "PendingDiscoveryRepository",
    "RestaurantRepository",
    "RestaurantSaveResult",
    "ShowRepository",
]
