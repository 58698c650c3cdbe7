"""
Next-name selection.

Two phases: draw a uniform random sample of names matching the couple's
filters (unrated by the user first, then the whole filtered pool), then score
every sampled candidate against a per-call context and return the best one.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .config import DEFAULT_RANKER_CONFIG, RankerConfig
from .data_store import DataStore
from .models import Name

logger = logging.getLogger(__name__)


@dataclass
class ScoringContext:
    partner_ratings: dict[int, int] = field(default_factory=dict)
    top_letters: set[str] = field(default_factory=set)
    top_origins: set[str] = field(default_factory=set)
    top_meaning_tags: set[str] = field(default_factory=set)
    recent_name_ids: list[int] = field(default_factory=list)  # most recent first
    total_names: int = 1


def score_candidate(
    row: pd.Series,
    ctx: ScoringContext,
    config: RankerConfig = DEFAULT_RANKER_CONFIG,
) -> float:
    """Deterministic part of a candidate's score; jitter is added by the caller."""
    name_id = int(row["id"])
    score = 0.0

    partner_rating = ctx.partner_ratings.get(name_id)
    if partner_rating is not None:
        if partner_rating >= config.short_list_threshold:
            score += config.partner_match_bonus
        else:
            score += config.partner_rated_bonus

    if row["starting_letter"] in ctx.top_letters:
        score += config.letter_bonus

    origin = row.get("origin")
    if isinstance(origin, str) and origin in ctx.top_origins:
        score += config.origin_bonus

    tags = row.get("meaning_tags_list") or []
    overlap = sum(1 for tag in tags if tag in ctx.top_meaning_tags)
    if overlap:
        score += min(overlap * config.meaning_tag_bonus, config.meaning_tag_cap)

    low, high = config.popularity_band
    p_low = math.floor(ctx.total_names * low)
    p_high = math.floor(ctx.total_names * high)
    if p_low <= int(row["us_rank"]) <= p_high:
        score += config.popularity_bonus

    try:
        position = ctx.recent_name_ids.index(name_id)
    except ValueError:
        position = -1
    if 0 <= position < config.strong_recency_window:
        score -= config.strong_recency_penalty
    elif 0 <= position < config.recency_window:
        score -= config.recency_penalty

    return score


def build_scoring_context(
    store: DataStore,
    user_id: int,
    partner_id: int | None,
    candidate_ids: list[int],
    config: RankerConfig = DEFAULT_RANKER_CONFIG,
) -> ScoringContext:
    """Assemble the per-call context; the four reads are independent of each other."""
    partner_ratings: dict[int, int] = {}
    if partner_id is not None:
        for r in store.ratings.for_user(partner_id, name_ids=candidate_ids):
            partner_ratings[r.name_id] = r.rating

    top_rated = store.ratings.for_user(user_id, min_rating=config.short_list_threshold)
    top_names = store.catalog.lookup(r.name_id for r in top_rated)

    recent = store.ratings.recent(user_id, limit=config.recency_window)

    ctx = ScoringContext(
        partner_ratings=partner_ratings,
        recent_name_ids=[r.name_id for r in recent],
        total_names=store.catalog.count() or 1,
    )
    for _, row in top_names.iterrows():
        if row["starting_letter"]:
            ctx.top_letters.add(row["starting_letter"])
        if isinstance(row["origin"], str) and row["origin"]:
            ctx.top_origins.add(row["origin"])
        ctx.top_meaning_tags.update(row["meaning_tags_list"])
    return ctx


def select_next(
    store: DataStore,
    user_id: int,
    couple_id: int,
    exclude_name_id: int | None = None,
    config: RankerConfig = DEFAULT_RANKER_CONFIG,
    rng: np.random.Generator | None = None,
) -> Name | None:
    """
    Pick the next name for *user_id* in *couple_id*.

    Returns ``None`` when the couple does not exist or when no name matches
    the couple's filters even after falling back to already-rated names.
    Callers that need to tell those apart check the couple themselves.
    """
    rng = rng if rng is not None else np.random.default_rng()

    couple = store.couples.get(couple_id)
    if couple is None:
        return None
    partner_id = couple.partner_of(user_id)

    excluded = store.ratings.rated_name_ids(user_id)
    if exclude_name_id is not None:
        excluded.add(exclude_name_id)

    candidates = store.catalog.sample(
        couple.gender_filter,
        couple.first_letter_filter,
        excluded,
        config.sample_size,
        rng,
    )

    if candidates.empty:
        logger.info(
            "No unrated names left for user %s in couple %s, sampling rated names",
            user_id, couple_id,
        )
        fallback = [exclude_name_id] if exclude_name_id is not None else []
        candidates = store.catalog.sample(
            couple.gender_filter,
            couple.first_letter_filter,
            fallback,
            config.sample_size,
            rng,
        )

    if candidates.empty:
        logger.info("Name catalog exhausted for couple %s under current filters", couple_id)
        return None

    ctx = build_scoring_context(
        store, user_id, partner_id, candidates["id"].astype(int).tolist(), config,
    )

    scores = candidates.apply(score_candidate, axis=1, ctx=ctx, config=config)
    if config.jitter > 0:
        scores = scores + rng.uniform(0.0, config.jitter, size=len(scores))

    best = scores.idxmax()
    winner_id = int(candidates.loc[best, "id"])
    logger.debug(
        "Scored %d candidates for user %s, winner %s (%.2f)",
        len(candidates), user_id, winner_id, scores[best],
    )

    return store.catalog.get(winner_id)
