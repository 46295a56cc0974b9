import pytest

from enrichment_orchestrator.dedup.identity import DiscoveryIdentityChecker
from enrichment_orchestrator.dedup.lexical import lexical_similarity
from enrichment_orchestrator.dedup.resolver import (
    AdjudicationContext,
    CandidateEntity,
    DuplicateResolver,
    build_pair,
)
from enrichment_orchestrator.gateway.call_gateway import CallGateway
from enrichment_orchestrator.repositories.chef_repository import ChefRepository
from enrichment_orchestrator.repositories.show_repository import ShowRepository
from enrichment_orchestrator.shared.names import identity_key, resolve_show_alias, slugify
from enrichment_orchestrator.shared.token_tracker import TokenTracker
from enrichment_orchestrator.storage.models import ChefDiscovery, RestaurantDiscovery, ShowDiscovery

from .conftest import ADJUDICATE, ScriptedBackend


def _resolver(backend: ScriptedBackend) -> DuplicateResolver:
    return DuplicateResolver(CallGateway(backend, tracker=TokenTracker(model=backend.model)))


def test_lexical_similarity_tiers() -> None:
    assert lexical_similarity("The Grill (Downtown)", "the grill") == 1.0
    assert lexical_similarity("Joe’s & Co", "joe's and co") == 1.0
    assert lexical_similarity("Aba", "Aba Chicago") == 0.9
    assert lexical_similarity("Girl and the Goat", "Little Goat Diner") == pytest.approx(1 / 6)
    assert lexical_similarity("Alinea", "Smyth") == 0.0
    assert lexical_similarity("", "Smyth") == 0.0


def test_identity_key_and_show_aliases() -> None:
    assert identity_key("The Top.Chef!!") == identity_key("top chef")
    assert resolve_show_alias("TOC") == resolve_show_alias("Tournament of Champions")
    assert slugify("Girl & the Goat", "Chicago") == "girl-the-goat-chicago"


def test_adjudicate_short_circuits_without_external_call() -> None:
    backend = ScriptedBackend()
    resolver = _resolver(backend)

    dissimilar = resolver.adjudicate(
        build_pair(CandidateEntity(name="Alinea"), CandidateEntity(name="Smyth"))
    )
    other_city = resolver.adjudicate(
        build_pair(
            CandidateEntity(name="Aba", city="Chicago"),
            CandidateEntity(name="Aba", city="Austin"),
        )
    )

    assert not dissimilar.is_duplicate
    assert other_city.reasoning == "Different cities"
    assert backend.calls == []


def test_adjudicate_without_arbiter_is_not_a_duplicate() -> None:
    verdict = DuplicateResolver(None).adjudicate(
        build_pair(CandidateEntity(name="Aba"), CandidateEntity(name="Aba Chicago"))
    )

    assert not verdict.is_duplicate
    assert verdict.confidence == 0.0


def test_find_duplicate_returns_adjudicated_match() -> None:
    backend = ScriptedBackend().on_json(
        ADJUDICATE, {"is_duplicate": True, "confidence": 0.92, "reasoning": "Same venue"}
    )
    existing = [
        CandidateEntity(id="r-1", name="Aba Chicago", city="Chicago"),
        CandidateEntity(id="r-2", name="Alinea", city="Chicago"),
    ]

    pair = _resolver(backend).find_duplicate(
        CandidateEntity(name="Aba", city="Chicago"),
        existing,
        context=AdjudicationContext(city="Chicago", state="IL"),
    )

    assert pair is not None
    assert pair.entity_b.id == "r-1"
    assert pair.adjudicated_confidence == 0.92
    assert backend.count(ADJUDICATE) == 1


def test_search_reports_usage_of_every_adjudication() -> None:
    backend = ScriptedBackend().on_json(
        ADJUDICATE, {"is_duplicate": False, "confidence": 0.1, "reasoning": "Different"}
    )
    existing = [
        CandidateEntity(id="r-1", name="Aba Chicago", city="Chicago"),
        CandidateEntity(id="r-2", name="Aba Rooftop", city="Chicago"),
        CandidateEntity(id="r-3", name="Alinea", city="Chicago"),
    ]

    search = _resolver(backend).search(CandidateEntity(name="Aba", city="Chicago"), existing)

    assert search.match is None
    assert search.adjudications == 2
    assert search.usage.total == 300
    assert search.model == "gpt-5-mini"


def test_find_duplicate_ignores_matches_below_threshold() -> None:
    backend = ScriptedBackend().on_json(
        ADJUDICATE, {"is_duplicate": True, "confidence": 0.6, "reasoning": "Maybe"}
    )

    pair = _resolver(backend).find_duplicate(
        CandidateEntity(name="Aba", city="Chicago"),
        [CandidateEntity(id="r-1", name="Aba Chicago", city="Chicago")],
    )

    assert pair is None


def test_arbiter_failure_degrades_to_not_duplicate() -> None:
    backend = ScriptedBackend()

    verdict = _resolver(backend).adjudicate(
        build_pair(CandidateEntity(name="Aba"), CandidateEntity(name="Aba Chicago"))
    )

    assert not verdict.is_duplicate
    assert verdict.reasoning.startswith("Error during detection")


def test_identity_matches_primary_tables(store) -> None:
    ShowRepository(store).create("Tournament of Champions")
    chef = ChefRepository(store).create("Stephanie Izard")
    checker = DiscoveryIdentityChecker(store)

    show_match = checker.check_identity("show", ShowDiscovery(name="TOC"))
    chef_match = checker.check_identity("chef", ChefDiscovery(name="stephanie  izard"))

    assert show_match is not None and show_match.table == "shows"
    assert chef_match is not None and chef_match.record_id == chef.id
    assert checker.check_identity("chef", ChefDiscovery(name="Someone Else")) is None


def test_identity_restaurant_requires_same_city(store) -> None:
    store.insert("restaurants", {"name": "Aba", "city": "Chicago", "chef_id": "c-1"})
    checker = DiscoveryIdentityChecker(store)

    same_city = checker.check_identity(
        "restaurant", RestaurantDiscovery(name="ABA", city="chicago")
    )
    other_city = checker.check_identity(
        "restaurant", RestaurantDiscovery(name="Aba", city="Austin")
    )

    assert same_city is not None and same_city.table == "restaurants"
    assert other_city is None


def test_identity_rejects_mismatched_kind(store) -> None:
    with pytest.raises(ValueError):
        DiscoveryIdentityChecker(store).check_identity("chef", ShowDiscovery(name="Chopped"))
