"""Cheap lexical similarity used as the first duplicate-detection tier."""

from __future__ import annotations

from enrichment_orchestrator.shared.names import normalize_entity_name

# Pairs below this score are treated as distinct without adjudication.
PREFILTER_THRESHOLD = 0.3


def lexical_similarity(name_a: str, name_b: str) -> float:
    """Score two names in [0, 1].

    Exact normalized match scores 1.0, containment 0.9, anything else the
    Jaccard overlap of the word sets.
    """
    norm_a = normalize_entity_name(name_a)
    norm_b = normalize_entity_name(name_b)
    if norm_a == norm_b:
        return 1.0
    if not norm_a or not norm_b:
        return 0.0
    if norm_a in norm_b or norm_b in norm_a:
        return 0.9

    words_a = set(norm_a.split(" "))
    words_b = set(norm_b.split(" "))
    return len(words_a & words_b) / len(words_a | words_b)
