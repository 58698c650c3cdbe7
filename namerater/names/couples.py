from __future__ import annotations

import logging

from .data_store import DataStore
from .errors import InvalidRequestError, NotFoundError
from .models import Couple, CoupleSettings, MemberOut, User

logger = logging.getLogger(__name__)

GENDER_FILTERS = ("boy", "girl", "all")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def identify(store: DataStore, email: str) -> tuple[User, Couple | None]:
    """Find or create the user for *email* and return the couple they belong to."""
    normalized = normalize_email(email)
    if not normalized:
        raise InvalidRequestError("Email is required")

    user, created = store.users.get_or_create(normalized)
    if created:
        logger.info("Created user %s", user.id)

    couples = store.couples.for_user(user.id)
    return user, couples[0] if couples else None


def create_couple(store: DataStore, user_id: int, partner_email: str) -> Couple:
    """
    Pair *user_id* with the owner of *partner_email*.

    Any couple the user already belongs to is dissolved first. If the partner
    has a couple of their own still waiting for a second member, the user
    joins it instead of creating a new one.
    """
    user = store.users.get(user_id)
    if user is None:
        raise NotFoundError("User not found")

    partner_email = normalize_email(partner_email)
    if user.email == partner_email:
        raise InvalidRequestError("Cannot pair with yourself")

    for existing in store.couples.for_user(user_id):
        store.couples.delete(existing.id)

    partner, _ = store.users.get_or_create(partner_email)

    waiting = store.couples.waiting_created_by(partner.id)
    if waiting is not None:
        logger.info("User %s joined couple %s", user_id, waiting.id)
        return store.couples.update(waiting.id, user2_id=user_id)

    couple = store.couples.create(user1_id=user_id, user2_id=partner.id)
    logger.info("Created couple %s", couple.id)
    return couple


def get_settings(store: DataStore, couple_id: int) -> CoupleSettings:
    couple = store.couples.get(couple_id)
    if couple is None:
        raise NotFoundError("Couple not found")

    user1 = store.users.get(couple.user1_id)
    user2 = store.users.get(couple.user2_id) if couple.user2_id is not None else None
    return CoupleSettings(
        id=couple.id,
        gender_filter=couple.gender_filter,
        first_letter_filter=couple.first_letter_filter,
        user1=MemberOut(id=couple.user1_id, email=user1.email if user1 else None),
        user2=(
            MemberOut(id=couple.user2_id, email=user2.email if user2 else None)
            if couple.user2_id is not None
            else None
        ),
    )


def update_settings(
    store: DataStore,
    couple_id: int,
    gender_filter: str | None = None,
    first_letter_filter: str | None = None,
) -> Couple:
    updates: dict[str, str] = {}

    if gender_filter is not None:
        if gender_filter not in GENDER_FILTERS:
            raise InvalidRequestError("gender_filter must be 'boy', 'girl', or 'all'")
        updates["gender_filter"] = gender_filter

    if first_letter_filter is not None:
        valid = first_letter_filter == "all" or (
            len(first_letter_filter) == 1 and "A" <= first_letter_filter <= "Z"
        )
        if not valid:
            raise InvalidRequestError("first_letter_filter must be 'all' or a single A-Z letter")
        updates["first_letter_filter"] = first_letter_filter

    if not updates:
        raise InvalidRequestError("No valid fields to update")

    updated = store.couples.update(couple_id, **updates)
    if updated is None:
        raise NotFoundError("Couple not found")
    return updated
