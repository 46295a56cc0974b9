"""Two-tier duplicate adjudication for venue records."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import AliasChoices, BaseModel, Field

from enrichment_orchestrator.cache.models import CacheTag
from enrichment_orchestrator.dedup.lexical import PREFILTER_THRESHOLD, lexical_similarity
from enrichment_orchestrator.gateway.base import GenerationOptions
from enrichment_orchestrator.gateway.call_gateway import CallGateway
from enrichment_orchestrator.shared.names import normalize_city
from enrichment_orchestrator.shared.result_parser import parse_and_validate
from enrichment_orchestrator.shared.token_tracker import TokenUsage

logger = logging.getLogger(__name__)

MERGE_THRESHOLD = 0.85
REVIEW_THRESHOLD = 0.7

ADJUDICATION_SYSTEM_PROMPT = """You are a restaurant data analyst identifying duplicate restaurant entries.

Decide whether two entries refer to the SAME physical restaurant location.

Guidelines:
- Same restaurant with slightly different names is a duplicate ("Aba" vs "Aba Chicago").
- The same name in different cities is NOT a duplicate.
- Different restaurants with similar names are NOT duplicates.
- Different addresses in the same city usually mean different locations.
- Consider chains, franchise locations and sister restaurants.

Confidence: 0.95+ definitely the same, 0.8-0.95 very likely, 0.5-0.8 ambiguous, below 0.5 probably different.

Respond with JSON only: {"is_duplicate": true|false, "confidence": 0.0-1.0, "reasoning": "..."}"""


class CandidateEntity(BaseModel):
    id: str | None = None
    name: str
    city: str | None = None
    state: str | None = None
    address: str | None = None


class AdjudicationContext(BaseModel):
    city: str | None = None
    state: str | None = None


class Verdict(BaseModel):
    is_duplicate: bool = Field(validation_alias=AliasChoices("is_duplicate", "isDuplicate"))
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage, exclude=True)
    model: str | None = Field(default=None, exclude=True)


class DuplicateCandidatePair(BaseModel):
    entity_a: CandidateEntity
    entity_b: CandidateEntity
    lexical_similarity: float
    adjudicated_confidence: float | None = None
    is_duplicate: bool | None = None
    reasoning: str | None = None


class DuplicateSearch(BaseModel):
    """Best match of a search plus what the adjudications along the way consumed."""

    match: DuplicateCandidatePair | None = None
    adjudications: int = 0
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str | None = None


def build_pair(entity_a: CandidateEntity, entity_b: CandidateEntity) -> DuplicateCandidatePair:
    return DuplicateCandidatePair(
        entity_a=entity_a,
        entity_b=entity_b,
        lexical_similarity=lexical_similarity(entity_a.name, entity_b.name),
    )


class DuplicateResolver:
    """Lexical prefilter, then an external arbiter for plausible pairs."""

    def __init__(
        self,
        gateway: CallGateway | None,
        *,
        options: GenerationOptions | None = None,
    ) -> None:
        self.gateway = gateway
        self.options = options or GenerationOptions(max_tokens=500, use_web_search=False)

    def adjudicate(
        self, pair: DuplicateCandidatePair, context: AdjudicationContext | None = None
    ) -> Verdict:
        context = context or AdjudicationContext()
        if pair.lexical_similarity < PREFILTER_THRESHOLD:
            return Verdict(is_duplicate=False, confidence=0.0, reasoning="Names are not similar")

        city_a = normalize_city(pair.entity_a.city or context.city)
        city_b = normalize_city(pair.entity_b.city or context.city)
        if city_a and city_b and city_a != city_b:
            return Verdict(is_duplicate=False, confidence=0.0, reasoning="Different cities")

        if self.gateway is None:
            return Verdict(is_duplicate=False, confidence=0.0, reasoning="No arbiter configured")

        prompt = _adjudication_prompt(pair, context)
        result = None
        try:
            result = self.gateway.generate(
                ADJUDICATION_SYSTEM_PROMPT,
                prompt,
                self.options,
                cache_as=CacheTag(kind="adjudication", entity_type="restaurant_pair"),
                label="adjudicate",
            )
            verdict = parse_and_validate(result.text, Verdict)
            verdict.usage = result.usage
            verdict.model = result.model
            return verdict
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "adjudication_failed a=%s b=%s error=%s",
                pair.entity_a.name,
                pair.entity_b.name,
                exc,
            )
            # A reply that arrived but did not parse was still paid for.
            return Verdict(
                is_duplicate=False,
                confidence=0.0,
                reasoning=f"Error during detection: {exc}",
                usage=result.usage if result is not None else TokenUsage(),
                model=result.model if result is not None else None,
            )

    def search(
        self,
        candidate: CandidateEntity,
        existing: Iterable[CandidateEntity],
        *,
        threshold: float = REVIEW_THRESHOLD,
        context: AdjudicationContext | None = None,
    ) -> DuplicateSearch:
        """Adjudicate plausible pairs, keeping the best match at or above ``threshold``."""
        search = DuplicateSearch()
        for other in existing:
            pair = build_pair(candidate, other)
            if pair.lexical_similarity < PREFILTER_THRESHOLD:
                continue
            verdict = self.adjudicate(pair, context)
            search.adjudications += 1
            search.usage = search.usage + verdict.usage
            search.model = search.model or verdict.model
            pair.adjudicated_confidence = verdict.confidence
            pair.is_duplicate = verdict.is_duplicate
            pair.reasoning = verdict.reasoning
            if not verdict.is_duplicate or verdict.confidence < threshold:
                continue
            best = search.match
            if best is None or verdict.confidence > (best.adjudicated_confidence or 0.0):
                search.match = pair
            if verdict.confidence >= MERGE_THRESHOLD:
                break
        return search

    def find_duplicate(
        self,
        candidate: CandidateEntity,
        existing: Iterable[CandidateEntity],
        *,
        threshold: float = REVIEW_THRESHOLD,
        context: AdjudicationContext | None = None,
    ) -> DuplicateCandidatePair | None:
        """Best adjudicated match at or above ``threshold``, or ``None``."""
        return self.search(candidate, existing, threshold=threshold, context=context).match


def _adjudication_prompt(pair: DuplicateCandidatePair, context: AdjudicationContext) -> str:
    city = pair.entity_a.city or pair.entity_b.city or context.city or "unknown city"
    state = pair.entity_a.state or pair.entity_b.state or context.state
    location = f"{city}, {state}" if state else city
    addr_a = f' at "{pair.entity_a.address}"' if pair.entity_a.address else ""
    addr_b = f' at "{pair.entity_b.address}"' if pair.entity_b.address else ""
    return (
        f"Compare these two restaurants in {location}:\n\n"
        f'Restaurant A: "{pair.entity_a.name}"{addr_a}\n'
        f'Restaurant B: "{pair.entity_b.name}"{addr_b}\n\n'
        "Are these the same restaurant?"
    )
