# classifieds/ranking.py
"""Scoring policy for free-text listing search.

The search engine only calls `RankingPolicy.score`; weights, the recency decay
and the way the parts are combined can be swapped by passing a different
policy (or subclass) to `AppContext`.
"""
from dataclasses import dataclass
from datetime import datetime

from .utils import tokenize


@dataclass(frozen=True)
class RankingPolicy:
    featured_weight: float = 1.5
    recency_weight: float = 1.0
    half_life_days: float = 7.0
    title_weight: float = 2.0

    @classmethod
    def from_settings(cls, settings) -> "RankingPolicy":
        return cls(
            featured_weight=settings.rank_featured_weight,
            recency_weight=settings.rank_recency_weight,
            half_life_days=settings.rank_half_life_days,
            title_weight=settings.rank_title_weight,
        )

    def text_relevance(self, terms: list[str], title: str, description: str) -> float:
        """Term frequency of `terms` in title (weighted) and description.

        Counts substring occurrences so that anything the SQL ILIKE filter
        admitted contributes to the score.
        """
        title_l = (title or "").lower()
        desc_l = (description or "").lower()
        total = 0.0
        for term in terms:
            total += self.title_weight * title_l.count(term) + desc_l.count(term)
        return total

    def decay(self, age_days: float) -> float:
        # halves every half_life_days, 1.0 for brand new listings
        return 0.5 ** (max(age_days, 0.0) / self.half_life_days)

    def combine(self, relevance: float, featured: bool, age_days: float) -> float:
        return (
            relevance
            + self.featured_weight * (1.0 if featured else 0.0)
            + self.recency_weight * self.decay(age_days)
        )

    def score(self, query: str, title: str, description: str, featured: bool,
              created_at: datetime, now: datetime) -> float:
        terms = tokenize(query)
        age_days = (now - created_at).total_seconds() / 86400.0
        return self.combine(self.text_relevance(terms, title, description), featured, age_days)
