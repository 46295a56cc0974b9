"""Enrichment services built on the call gateway."""

from enrichment_orchestrator.services.base import ServiceResult
from enrichment_orchestrator.services.bio import ChefBioResult, ChefBioService, NarrativeResult
from enrichment_orchestrator.services.restaurant_discovery import (
    RestaurantDiscoveryResult,
    RestaurantDiscoveryService,
)
from enrichment_orchestrator.services.show_discovery import (
    ShowDiscoveryResult,
    ShowDiscoveryService,
)
from enrichment_orchestrator.services.status_verification import (
    StatusVerificationResult,
    StatusVerificationService,
)

__all__ = [
    "ChefBioResult",
    "ChefBioService",
    "NarrativeResult",
    "RestaurantDiscoveryResult",
    "RestaurantDiscoveryService",
    "ServiceResult",
    "ShowDiscoveryResult",
    "ShowDiscoveryService",
    "StatusVerificationResult",
    "StatusVerificationService",
]
