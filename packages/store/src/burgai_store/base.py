"""Abstract store interface.

Any storage backend (SQLite, Postgres, S3) implements this interface. The
CLI depends on BaseStore, not on a concrete backend, so backends are
swappable without touching CLI code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from burgai_store.models import FeedbackRecord, ReviewRecord


class BaseStore(ABC):
    """Pluggable persistence layer for review history and comment feedback.

    Implementations must be safe to call from CI environments where no
    interactive credentials are available. All auth must happen via
    constructor arguments or environment variables resolved at init time.
    """

    @abstractmethod
    def save(self, record: ReviewRecord) -> None:
        """Persist a completed review record."""

    @abstractmethod
    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[ReviewRecord]:
        """Return reviews for a repo, oldest first, optionally filtered by PR number.

        Returns an empty list if no reviews exist. Never raises.
        """

    @abstractmethod
    def recent_reviews(self, repo: str, limit: int = 10) -> list[ReviewRecord]:
        """Return up to ``limit`` successful reviews for a repo, newest first."""

    @abstractmethod
    def record_feedback(self, feedback: FeedbackRecord) -> None:
        """Store a feedback entry, replacing any earlier one by the same user on the same comment."""

    @abstractmethod
    def list_feedback(self, repo: str) -> list[FeedbackRecord]:
        """Return every feedback entry recorded for a repo."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional. Subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
