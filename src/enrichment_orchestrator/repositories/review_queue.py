"""Queue of possible duplicates awaiting a human decision."""

from __future__ import annotations

from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.models import DuplicateReview

REVIEW_TABLE = "duplicate_reviews"


class DuplicateReviewQueue:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def flag(
        self,
        *,
        table_name: str,
        record_id: str,
        candidate_id: str,
        confidence: float,
        reasoning: str | None = None,
    ) -> DuplicateReview:
        row = self.store.insert(
            REVIEW_TABLE,
            {
                "table_name": table_name,
                "record_id": record_id,
                "candidate_id": candidate_id,
                "confidence": confidence,
                "reasoning": reasoning,
                "status": "open",
            },
        )
        return DuplicateReview.model_validate(row)

    def open_items(self, table_name: str | None = None) -> list[DuplicateReview]:
        filters: dict[str, str] = {"status": "open"}
        if table_name:
            filters["table_name"] = table_name
        rows = self.store.select(REVIEW_TABLE, filters=filters, order_by="created_at")
        return [DuplicateReview.model_validate(row) for row in rows]

    def resolve(self, review_id: str) -> DuplicateReview | None:
        row = self.store.update(REVIEW_TABLE, review_id, {"status": "resolved"})
        return DuplicateReview.model_validate(row) if row else None
