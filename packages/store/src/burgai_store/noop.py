"""No-op store, the default when no store is configured.

Reviews are posted to GitHub but not persisted anywhere, and the adaptive
thresholds fall back to their configured defaults. Using a NoOpStore rather
than None lets the CLI always call store.save() without conditional checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from burgai_store.base import BaseStore

if TYPE_CHECKING:
    from burgai_store.models import FeedbackRecord, ReviewRecord


class NoOpStore(BaseStore):
    """Silently discards all records. Zero configuration required.

    Teams that want history, stats and adaptive thresholds switch to
    SQLiteStore (.burgai.yml: store: sqlite).
    """

    def save(self, record: ReviewRecord) -> None:
        pass  # intentional no-op

    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[ReviewRecord]:
        return []

    def recent_reviews(self, repo: str, limit: int = 10) -> list[ReviewRecord]:
        return []

    def record_feedback(self, feedback: FeedbackRecord) -> None:
        pass

    def list_feedback(self, repo: str) -> list[FeedbackRecord]:
        return []
