from __future__ import annotations

from dataclasses import dataclass

RATING_MIN = 1
RATING_MAX = 5
SHORT_LIST_THRESHOLD = 4
RECENT_RATINGS_LIMIT = 5


@dataclass(frozen=True)
class RankerConfig:
    sample_size: int = 200
    short_list_threshold: int = SHORT_LIST_THRESHOLD
    recency_window: int = 50
    strong_recency_window: int = 10

    partner_match_bonus: float = 30.0
    partner_rated_bonus: float = 15.0
    letter_bonus: float = 10.0
    origin_bonus: float = 10.0
    meaning_tag_bonus: float = 5.0
    meaning_tag_cap: float = 10.0
    popularity_bonus: float = 5.0
    popularity_band: tuple[float, float] = (0.25, 0.75)
    strong_recency_penalty: float = 50.0
    recency_penalty: float = 20.0

    jitter: float = 5.0


DEFAULT_RANKER_CONFIG = RankerConfig()
