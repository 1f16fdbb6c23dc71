"""Simple in-process metrics registry for service instrumentation."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class MetricsRegistry:
    """Holds counters exposed by the application."""

    entity_creations: Counter = field(default_factory=Counter)
    entity_deletions: Counter = field(default_factory=Counter)
    review_outcomes: Counter = field(default_factory=Counter)
    review_interval_buckets: Counter = field(default_factory=Counter)
    review_not_found: int = 0
    invalid_ratings: int = 0

    def record_creation(self, entity_type: str, count: int = 1) -> None:
        self.entity_creations[entity_type] += count

    def record_deletion(self, entity_type: str) -> None:
        self.entity_deletions[entity_type] += 1

    def record_review(self, difficulty: str, interval_hours: float) -> None:
        """Track a completed review and the interval it scheduled."""

        self.review_outcomes[difficulty] += 1
        self.review_interval_buckets[int(interval_hours)] += 1

    def record_review_not_found(self) -> None:
        self.review_not_found += 1

    def record_invalid_rating(self) -> None:
        self.invalid_ratings += 1

    @property
    def total_reviews(self) -> int:
        return sum(self.review_outcomes.values())

    def snapshot(self) -> Dict[str, Any]:
        return {
            "entity_creations": dict(self.entity_creations),
            "entity_deletions": dict(self.entity_deletions),
            "review_outcomes": dict(self.review_outcomes),
            "review_interval_buckets": {
                str(hours): count for hours, count in self.review_interval_buckets.items()
            },
            "review_not_found": self.review_not_found,
            "invalid_ratings": self.invalid_ratings,
            "total_reviews": self.total_reviews,
        }


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
