from __future__ import annotations

from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd

from namerater.names.catalog import NameCatalog, prepare_frame
from namerater.names.config import RankerConfig
from namerater.names.data_store import DataStore
from namerater.names.ranker import (
    ScoringContext,
    build_scoring_context,
    score_candidate,
    select_next,
)

NO_JITTER = RankerConfig(jitter=0.0)
T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _name(id_, name, letter=None, origin=None, rank=1000, boy=True, girl=True, tags=""):
    return {
        "id": id_,
        "name": name,
        "origin": origin,
        "meaning": None,
        "us_rank": rank,
        "is_boy": boy,
        "is_girl": girl,
        "starting_letter": letter or name[0],
        "syllable_count": 2,
        "meaning_tags": tags,
    }


def _store(rows) -> DataStore:
    return DataStore(catalog=NameCatalog(prepare_frame(pd.DataFrame(rows))))


def _couple(store: DataStore, with_partner: bool = True, **filters):
    a, _ = store.users.get_or_create("a@example.com")
    b, _ = store.users.get_or_create("b@example.com")
    couple = store.couples.create(a.id, b.id if with_partner else None)
    if filters:
        couple = store.couples.update(couple.id, **filters)
    return a.id, b.id, couple.id


def _rate(store, user_id, couple_id, ratings: dict[int, int]):
    for i, (name_id, value) in enumerate(ratings.items()):
        store.ratings.upsert(user_id, name_id, couple_id, value, now=T0 + timedelta(minutes=i))


def _row(id_=1, letter="Z", origin=None, rank=1000, tags=()):
    return pd.Series({
        "id": id_,
        "name": "X",
        "starting_letter": letter,
        "origin": origin,
        "us_rank": rank,
        "meaning_tags_list": list(tags),
    })


# ── score_candidate ──────────────────────────────────────────────────────


class TestScoreCandidate:
    def test_no_signals_scores_zero(self):
        ctx = ScoringContext(total_names=100)
        assert score_candidate(_row(rank=0), ctx, NO_JITTER) == 0.0

    def test_partner_threshold_step_is_fifteen(self):
        low = ScoringContext(partner_ratings={1: 3}, total_names=100)
        high = ScoringContext(partner_ratings={1: 4}, total_names=100)
        row = _row(rank=0)
        assert score_candidate(row, low, NO_JITTER) == 15.0
        assert score_candidate(row, high, NO_JITTER) == 30.0
        assert score_candidate(row, high, NO_JITTER) - score_candidate(row, low, NO_JITTER) == 15.0

    def test_letter_and_origin_bonuses(self):
        ctx = ScoringContext(top_letters={"A"}, top_origins={"Latin"}, total_names=100)
        assert score_candidate(_row(letter="A", origin="Latin", rank=0), ctx, NO_JITTER) == 20.0
        assert score_candidate(_row(letter="B", origin="Greek", rank=0), ctx, NO_JITTER) == 0.0

    def test_missing_origin_never_matches(self):
        ctx = ScoringContext(top_origins={"Latin"}, total_names=100)
        assert score_candidate(_row(origin=float("nan"), rank=0), ctx, NO_JITTER) == 0.0

    def test_meaning_tags_capped_at_ten(self):
        ctx = ScoringContext(top_meaning_tags={"light", "moon", "night"}, total_names=100)
        assert score_candidate(_row(tags=["light"], rank=0), ctx, NO_JITTER) == 5.0
        assert score_candidate(_row(tags=["light", "moon", "night"], rank=0), ctx, NO_JITTER) == 10.0

    def test_popularity_band_inclusive(self):
        ctx = ScoringContext(total_names=100)
        assert score_candidate(_row(rank=25), ctx, NO_JITTER) == 5.0
        assert score_candidate(_row(rank=75), ctx, NO_JITTER) == 5.0
        assert score_candidate(_row(rank=24), ctx, NO_JITTER) == 0.0
        assert score_candidate(_row(rank=76), ctx, NO_JITTER) == 0.0

    def test_recency_penalty_ordering(self):
        recent = [100 + i for i in range(50)]
        strong = ScoringContext(recent_name_ids=[1] + recent[:49], total_names=100)
        weak = ScoringContext(recent_name_ids=recent[:20] + [1], total_names=100)
        none = ScoringContext(recent_name_ids=recent, total_names=100)
        row = _row(rank=0)
        s_strong = score_candidate(row, strong, NO_JITTER)
        s_weak = score_candidate(row, weak, NO_JITTER)
        s_none = score_candidate(row, none, NO_JITTER)
        assert s_strong == -50.0
        assert s_weak == -20.0
        assert s_strong < s_weak < s_none

    def test_recency_window_boundary(self):
        ids = [100 + i for i in range(9)] + [1]
        assert score_candidate(_row(rank=0), ScoringContext(recent_name_ids=ids, total_names=100), NO_JITTER) == -50.0
        ids = [100 + i for i in range(10)] + [1]
        assert score_candidate(_row(rank=0), ScoringContext(recent_name_ids=ids, total_names=100), NO_JITTER) == -20.0


# ── build_scoring_context ────────────────────────────────────────────────


def test_context_harvests_top_rated_attributes():
    store = _store([
        _name(1, "Luna", origin="Latin", tags="moon|light"),
        _name(2, "Liam", origin="Irish", tags="warrior"),
        _name(3, "Ezra", origin="Hebrew", tags="help"),
    ])
    a, b, cid = _couple(store)
    _rate(store, a, cid, {1: 5, 2: 2})
    _rate(store, b, cid, {3: 4})

    ctx = build_scoring_context(store, a, b, [1, 2, 3])

    assert ctx.partner_ratings == {3: 4}
    assert ctx.top_letters == {"L"}
    assert ctx.top_origins == {"Latin"}
    assert ctx.top_meaning_tags == {"moon", "light"}
    assert ctx.recent_name_ids == [2, 1]
    assert ctx.total_names == 3


def test_context_skips_partner_when_absent():
    store = _store([_name(1, "Luna")])
    a, _, cid = _couple(store, with_partner=False)
    ctx = build_scoring_context(store, a, None, [1])
    assert ctx.partner_ratings == {}


# ── select_next ──────────────────────────────────────────────────────────


def test_scenario_prefers_partner_favourite():
    store = _store([
        _name(1, "Ada"),
        _name(2, "Bea"),
        _name(3, "Cy"),
        _name(4, "Di"),
    ])
    a, b, cid = _couple(store)
    _rate(store, a, cid, {1: 5, 2: 2})
    _rate(store, b, cid, {1: 5, 3: 4})

    for seed in range(20):
        chosen = select_next(store, a, cid, rng=np.random.default_rng(seed))
        assert chosen is not None
        assert chosen.id == 3


def test_scenario_scores_penalise_recent_partner_match():
    store = _store([_name(1, "Ada"), _name(2, "Bea"), _name(3, "Cy"), _name(4, "Di")])
    a, b, cid = _couple(store)
    _rate(store, a, cid, {1: 5, 2: 2})
    _rate(store, b, cid, {1: 5, 3: 4})

    ctx = build_scoring_context(store, a, b, [1, 2, 3, 4], NO_JITTER)
    frame = store.catalog.sample("all", "all", [], 200, np.random.default_rng(0))
    scores = {
        int(row["id"]): score_candidate(row, ctx, NO_JITTER) for _, row in frame.iterrows()
    }
    assert scores[3] > scores[4] > scores[1]
    assert scores[3] - max(scores[1], scores[2], scores[4]) >= 15


def test_deterministic_without_jitter():
    store = _store([
        _name(1, "Ada", rank=1),
        _name(2, "Bea", rank=2, origin="Latin"),
        _name(3, "Cy", rank=3),
        _name(5, "Bo", rank=5, origin="Latin"),
    ])
    a, _, cid = _couple(store, with_partner=False)
    _rate(store, a, cid, {5: 5})

    picks = {select_next(store, a, cid, config=NO_JITTER, rng=np.random.default_rng(s)).id
             for s in range(10)}
    # "Bea" matches both the top letter and origin of the user's 5-star "Bo".
    assert picks == {2}


def test_exclude_name_respected():
    store = _store([_name(1, "Ada"), _name(2, "Bea")])
    a, _, cid = _couple(store)
    for seed in range(10):
        chosen = select_next(store, a, cid, exclude_name_id=1, rng=np.random.default_rng(seed))
        assert chosen.id == 2


def test_unrated_first_policy():
    store = _store([_name(i, f"N{i}") for i in range(1, 11)])
    a, b, cid = _couple(store)
    # Partner loves everything the user already rated; still must not resurface.
    _rate(store, a, cid, {i: 5 for i in range(1, 10)})
    _rate(store, b, cid, {i: 5 for i in range(1, 10)})
    for seed in range(10):
        assert select_next(store, a, cid, rng=np.random.default_rng(seed)).id == 10


def test_fallback_to_rated_pool_minus_excluded():
    store = _store([_name(1, "Ada"), _name(2, "Bea"), _name(3, "Cy")])
    a, _, cid = _couple(store)
    _rate(store, a, cid, {1: 3, 2: 3, 3: 3})

    seen = set()
    for seed in range(30):
        chosen = select_next(store, a, cid, exclude_name_id=2, rng=np.random.default_rng(seed))
        assert chosen is not None
        assert chosen.id != 2
        seen.add(chosen.id)
    assert seen <= {1, 3}


def test_single_rated_name_excluded_returns_none():
    store = _store([_name(1, "Ada")])
    a, _, cid = _couple(store)
    _rate(store, a, cid, {1: 3})
    assert select_next(store, a, cid, exclude_name_id=1) is None


def test_empty_filtered_catalog_returns_none():
    store = _store([_name(1, "Ada", boy=True, girl=False)])
    a, _, cid = _couple(store, gender_filter="girl")
    assert select_next(store, a, cid) is None


def test_filters_applied():
    store = _store([
        _name(1, "Ada", boy=False, girl=True),
        _name(2, "Abe", boy=True, girl=False),
        _name(3, "Ben", boy=True, girl=False),
    ])
    a, _, cid = _couple(store, gender_filter="boy", first_letter_filter="A")
    for seed in range(10):
        assert select_next(store, a, cid, rng=np.random.default_rng(seed)).id == 2


def test_unknown_couple_returns_none():
    store = _store([_name(1, "Ada")])
    assert select_next(store, 1, 999) is None


def test_returns_full_record():
    store = _store([_name(7, "Luna", origin="Latin", rank=21, boy=False, tags="moon|night")])
    a, _, cid = _couple(store)
    chosen = select_next(store, a, cid)
    assert chosen.id == 7
    assert chosen.name == "Luna"
    assert chosen.name_lower == "luna"
    assert chosen.origin == "Latin"
    assert chosen.is_girl and not chosen.is_boy
    assert chosen.meaning_tags == ["moon", "night"]


def test_sample_size_bounds_candidates():
    store = _store([_name(i, f"N{i}") for i in range(1, 51)])
    frame = store.catalog.sample("all", "all", [], 10, np.random.default_rng(1))
    assert len(frame) == 10
    assert frame["id"].is_unique
