from __future__ import annotations

import itertools
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .catalog import NameCatalog, load_catalog
from .models import Couple, Rating, ShortListEntry, User


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserStore:
    def __init__(self) -> None:
        self._by_id: dict[int, User] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def get(self, user_id: int) -> User | None:
        return self._by_id.get(user_id)

    def find_by_email(self, email: str) -> User | None:
        for user in self._by_id.values():
            if user.email == email:
                return user
        return None

    def get_or_create(self, email: str) -> tuple[User, bool]:
        """Return ``(user, created)`` for an already-normalised email."""
        with self._lock:
            existing = self.find_by_email(email)
            if existing:
                return existing, False
            user = User(id=next(self._ids), email=email, created_at=utcnow())
            self._by_id[user.id] = user
            return user, True


class CoupleStore:
    def __init__(self) -> None:
        self._by_id: dict[int, Couple] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def get(self, couple_id: int) -> Couple | None:
        return self._by_id.get(couple_id)

    def for_user(self, user_id: int) -> list[Couple]:
        return [c for c in self._by_id.values() if user_id in c.members()]

    def waiting_created_by(self, user_id: int) -> Couple | None:
        """A couple *user_id* created that still has no second member."""
        for couple in self._by_id.values():
            if couple.user1_id == user_id and couple.user2_id is None:
                return couple
        return None

    def create(self, user1_id: int, user2_id: int | None = None) -> Couple:
        with self._lock:
            couple = Couple(
                id=next(self._ids),
                user1_id=user1_id,
                user2_id=user2_id,
                created_at=utcnow(),
            )
            self._by_id[couple.id] = couple
            return couple

    def update(self, couple_id: int, **changes) -> Couple | None:
        with self._lock:
            couple = self._by_id.get(couple_id)
            if couple is None:
                return None
            updated = couple.model_copy(update=changes)
            self._by_id[couple_id] = updated
            return updated

    def delete(self, couple_id: int) -> bool:
        with self._lock:
            return self._by_id.pop(couple_id, None) is not None


class RatingStore:
    """One rating per (user, name); re-rating overwrites value and ``updated_at``."""

    def __init__(self) -> None:
        self._by_key: dict[tuple[int, int], Rating] = {}
        # Write sequence breaks ``updated_at`` ties when ordering by recency.
        self._seq: dict[tuple[int, int], int] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def upsert(
        self,
        user_id: int,
        name_id: int,
        couple_id: int,
        value: int,
        now: datetime | None = None,
    ) -> Rating:
        now = now or utcnow()
        key = (user_id, name_id)
        with self._lock:
            existing = self._by_key.get(key)
            if existing:
                rating = existing.model_copy(update={"rating": value, "updated_at": now})
            else:
                rating = Rating(
                    user_id=user_id,
                    name_id=name_id,
                    couple_id=couple_id,
                    rating=value,
                    created_at=now,
                    updated_at=now,
                )
            self._by_key[key] = rating
            self._seq[key] = next(self._counter)
            return rating

    def get(self, user_id: int, name_id: int) -> Rating | None:
        return self._by_key.get((user_id, name_id))

    def delete(self, user_id: int, name_id: int) -> Rating | None:
        with self._lock:
            self._seq.pop((user_id, name_id), None)
            return self._by_key.pop((user_id, name_id), None)

    def for_user(
        self,
        user_id: int,
        name_ids: Iterable[int] | None = None,
        min_rating: int | None = None,
    ) -> list[Rating]:
        wanted = set(name_ids) if name_ids is not None else None
        results = []
        for (uid, nid), rating in list(self._by_key.items()):
            if uid != user_id:
                continue
            if wanted is not None and nid not in wanted:
                continue
            if min_rating is not None and rating.rating < min_rating:
                continue
            results.append(rating)
        return results

    def rated_name_ids(self, user_id: int) -> set[int]:
        return {nid for (uid, nid) in list(self._by_key) if uid == user_id}

    def recent(self, user_id: int, limit: int) -> list[Rating]:
        """The user's ratings ordered by ``updated_at`` descending."""
        ratings = self.for_user(user_id)
        ratings.sort(
            key=lambda r: (r.updated_at, self._seq.get((r.user_id, r.name_id), 0)),
            reverse=True,
        )
        return ratings[:limit]

    def count_for_user(self, user_id: int) -> int:
        return len(self.rated_name_ids(user_id))


class ShortListStore:
    def __init__(self) -> None:
        self._by_key: dict[tuple[int, int], ShortListEntry] = {}
        self._lock = threading.Lock()

    def upsert(
        self,
        couple_id: int,
        name_id: int,
        user1_rating: int,
        user2_rating: int,
        now: datetime | None = None,
    ) -> ShortListEntry:
        entry = ShortListEntry(
            couple_id=couple_id,
            name_id=name_id,
            user1_rating=user1_rating,
            user2_rating=user2_rating,
            added_at=now or utcnow(),
        )
        with self._lock:
            self._by_key[(couple_id, name_id)] = entry
        return entry

    def delete(self, couple_id: int, name_id: int) -> ShortListEntry | None:
        with self._lock:
            return self._by_key.pop((couple_id, name_id), None)

    def get(self, couple_id: int, name_id: int) -> ShortListEntry | None:
        return self._by_key.get((couple_id, name_id))

    def for_couple(self, couple_id: int) -> list[ShortListEntry]:
        entries = [e for (cid, _), e in list(self._by_key.items()) if cid == couple_id]
        entries.sort(key=lambda e: e.added_at, reverse=True)
        return entries

    def count_for_couple(self, couple_id: int) -> int:
        return sum(1 for (cid, _) in list(self._by_key) if cid == couple_id)


@dataclass
class DataStore:
    """Handle passed explicitly to the ranker and the rating/couple services."""

    catalog: NameCatalog
    users: UserStore = field(default_factory=UserStore)
    couples: CoupleStore = field(default_factory=CoupleStore)
    ratings: RatingStore = field(default_factory=RatingStore)
    short_list: ShortListStore = field(default_factory=ShortListStore)
    # Serialises a rating write with its short-list update.
    write_lock: threading.Lock = field(default_factory=threading.Lock)


_store: DataStore | None = None


def get_store() -> DataStore:
    """Return the process-wide store, loading the name catalog on first call."""
    global _store
    if _store is None:
        _store = DataStore(catalog=load_catalog())
    return _store


def reset_store() -> None:
    """Drop users, couples and ratings; the catalog is reloaded lazily."""
    global _store
    _store = None
