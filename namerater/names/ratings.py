from __future__ import annotations

import logging

from .config import RECENT_RATINGS_LIMIT, SHORT_LIST_THRESHOLD
from .data_store import DataStore, utcnow
from .errors import NotFoundError
from .models import (
    Couple,
    RatingOutcome,
    RatingStats,
    RecentRating,
    ShortListItem,
)

logger = logging.getLogger(__name__)


def _require_couple(store: DataStore, couple_id: int) -> Couple:
    couple = store.couples.get(couple_id)
    if couple is None:
        raise NotFoundError("Couple not found")
    return couple


def submit_rating(
    store: DataStore,
    user_id: int,
    name_id: int,
    couple_id: int,
    value: int,
    threshold: int = SHORT_LIST_THRESHOLD,
) -> RatingOutcome:
    """
    Upsert a rating and keep the couple's short-list in step with it.

    A name sits on the short-list while both partners rate it at or above
    *threshold*; any other combination removes an existing entry.
    """
    couple = _require_couple(store, couple_id)
    name = store.catalog.get(name_id)
    if name is None:
        raise NotFoundError("Name not found")

    now = utcnow()
    with store.write_lock:
        rating = store.ratings.upsert(user_id, name_id, couple_id, value, now=now)

        change = None
        partner_id = couple.partner_of(user_id)
        if partner_id is not None:
            partner_rating = store.ratings.get(partner_id, name_id)
            both_high = (
                partner_rating is not None
                and partner_rating.rating >= threshold
                and value >= threshold
            )
            if both_high:
                is_user1 = couple.user1_id == user_id
                store.short_list.upsert(
                    couple_id,
                    name_id,
                    user1_rating=value if is_user1 else partner_rating.rating,
                    user2_rating=partner_rating.rating if is_user1 else value,
                    now=now,
                )
                change = "added"
            elif store.short_list.delete(couple_id, name_id) is not None:
                change = "removed"

    if change:
        logger.info("Short-list %s: couple %s, name %s", change, couple_id, name_id)
    return RatingOutcome(rating=rating, short_list_change=change, name=name.name)


def remove_rating(
    store: DataStore,
    user_id: int,
    name_id: int,
    couple_id: int,
) -> RatingOutcome:
    _require_couple(store, couple_id)
    with store.write_lock:
        removed = store.ratings.delete(user_id, name_id)
        if removed is None:
            raise NotFoundError("Rating not found")
        change = "removed" if store.short_list.delete(couple_id, name_id) is not None else None

    name = store.catalog.get(name_id)
    return RatingOutcome(
        rating=None,
        short_list_change=change,
        name=name.name if name else None,
    )


def recent_ratings(
    store: DataStore,
    user_id: int,
    limit: int = RECENT_RATINGS_LIMIT,
) -> list[RecentRating]:
    items: list[RecentRating] = []
    for r in store.ratings.recent(user_id, limit=limit):
        name = store.catalog.get(r.name_id)
        if name is None:
            continue
        items.append(RecentRating(
            name_id=r.name_id,
            name=name.name,
            rating=r.rating,
            updated_at=r.updated_at,
        ))
    return items


def rating_stats(store: DataStore, user_id: int, couple_id: int) -> RatingStats:
    return RatingStats(
        total_ratings=store.ratings.count_for_user(user_id),
        short_list_count=store.short_list.count_for_couple(couple_id),
    )


def list_short_list(store: DataStore, couple_id: int) -> list[ShortListItem]:
    items: list[ShortListItem] = []
    for entry in store.short_list.for_couple(couple_id):
        name = store.catalog.get(entry.name_id)
        if name is None:
            continue
        items.append(ShortListItem(
            name_id=entry.name_id,
            name=name.name,
            user1_rating=entry.user1_rating,
            user2_rating=entry.user2_rating,
            added_at=entry.added_at,
        ))
    return items
