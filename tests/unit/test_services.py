from enrichment_orchestrator.cache.result_cache import ResultCache
from enrichment_orchestrator.gateway.call_gateway import CallGateway
from enrichment_orchestrator.services import (
    ChefBioService,
    RestaurantDiscoveryService,
    ShowDiscoveryService,
    StatusVerificationService,
)
from enrichment_orchestrator.shared.token_tracker import TokenTracker

from .conftest import BIO, NARRATIVE, RESTAURANTS, SHOWS, STATUS, ScriptedBackend


def _gateway(backend: ScriptedBackend, store) -> CallGateway:
    return CallGateway(backend, tracker=TokenTracker(model=backend.model), cache=ResultCache(store))


def test_bio_parses_aliases_and_cleans_values(store) -> None:
    backend = ScriptedBackend().on_json(
        BIO,
        {
            "miniBio": "Won Top Chef season 4 ([bravo](https://bravotv.com)).",
            "jamesBeardStatus": "Winner",
            "notableAwards": ["James Beard Best Chef Great Lakes (2013)"],
        },
    )
    service = ChefBioService(_gateway(backend, store))

    result = service.enrich_bio("c-1", "Stephanie Izard", "Top Chef", season="Season 4")

    assert result.success
    assert result.bio.mini_bio == "Won Top Chef season 4."
    assert result.bio.james_beard_status == "winner"
    assert result.usage.total == 150
    assert "who appeared on Top Chef (Season 4)" in backend.calls[0]


def test_bio_unknown_award_status_becomes_none(store) -> None:
    backend = ScriptedBackend().on_json(BIO, {"mini_bio": "Chef.", "james_beard_status": "legend"})

    result = ChefBioService(_gateway(backend, store)).enrich_bio("c-1", "Izard")

    assert result.bio.james_beard_status is None


def test_bio_second_call_is_served_from_cache(store) -> None:
    backend = ScriptedBackend().on_json(BIO, {"mini_bio": "Chef."})
    service = ChefBioService(_gateway(backend, store))

    service.enrich_bio("c-1", "Izard")
    cached = service.enrich_bio("c-1", "Izard")

    assert cached.success and cached.from_cache
    assert cached.usage.total == 0
    assert backend.count(BIO) == 1


def test_bio_parse_failure_keeps_usage(store) -> None:
    backend = ScriptedBackend().on(BIO, "I could not find this chef.")

    result = ChefBioService(_gateway(backend, store)).enrich_bio("c-1", "Izard")

    assert not result.success
    assert result.error
    assert result.usage.total == 150
    assert result.model == "gpt-5-mini"


def test_bio_call_failure_reports_error_without_usage(store) -> None:
    result = ChefBioService(_gateway(ScriptedBackend(), store)).enrich_bio("c-1", "Izard")

    assert not result.success
    assert result.usage.total == 0


def test_narrative_is_trimmed(store) -> None:
    backend = ScriptedBackend().on_json(NARRATIVE, {"narrative": "  Two paragraphs.  "})

    result = ChefBioService(_gateway(backend, store)).generate_narrative(
        "c-1", {"name": "Izard", "restaurants": []}
    )

    assert result.success
    assert result.narrative == "Two paragraphs."


def test_show_discovery_parses_list(store) -> None:
    backend = ScriptedBackend().on_json(
        SHOWS,
        [
            {"show_name": "Top Chef", "season": "Season 4", "result": "winner"},
            {"showName": "Iron Chef America", "season": None, "result": "Challenger"},
        ],
    )

    result = ShowDiscoveryService(_gateway(backend, store)).find_all_shows("c-1", "Izard")

    assert result.success
    assert [show.show_name for show in result.shows] == ["Top Chef", "Iron Chef America"]
    assert result.shows[1].result is None


def test_restaurant_discovery_caps_results(store) -> None:
    backend = ScriptedBackend().on_json(
        RESTAURANTS,
        {
            "restaurants": [
                {"name": "Girl & the Goat", "city": "Chicago", "status": "open"},
                {"name": "Duck Duck Goat", "city": "Chicago", "priceRange": "$$"},
                {"name": "Cabra", "city": "Chicago"},
            ]
        },
    )
    service = RestaurantDiscoveryService(_gateway(backend, store), max_restaurants=2)

    result = service.find_restaurants("c-1", "Izard", "Top Chef", season="Season 4")

    assert result.success
    assert [item.name for item in result.restaurants] == ["Girl & the Goat", "Duck Duck Goat"]
    assert result.restaurants[1].price_range == "$$"
    assert result.restaurants[1].status == "unknown"


def test_status_verdict_is_normalized(store) -> None:
    backend = ScriptedBackend().on_json(
        STATUS, {"status": "OPEN", "confidence": 1.4, "reason": "Recent reviews"}
    )

    result = StatusVerificationService(_gateway(backend, store)).verify_status(
        "r-1", "Aba", chef_name="Izard", city="Chicago", state="IL"
    )

    assert result.success
    assert result.status == "open"
    assert result.confidence == 1.0
    assert 'Is the restaurant "Aba" in Chicago, IL currently open?' in backend.calls[0]


def test_status_failure_is_unknown(store) -> None:
    backend = ScriptedBackend().on(STATUS, '{"status": "maybe", "confidence": 0.5}')

    result = StatusVerificationService(_gateway(backend, store)).verify_status("r-1", "Aba")

    assert not result.success
    assert result.status == "unknown"
    assert result.reason.startswith("Error:")
