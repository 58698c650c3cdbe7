from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .config import RATING_MAX, RATING_MIN

GenderFilter = Literal["boy", "girl", "all"]
ShortListChange = Literal["added", "removed"]

_LETTER_FILTER_PATTERN = r"^(all|[A-Z])$"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class Name(BaseModel):
    id: int
    name: str
    name_lower: str
    origin: str | None = None
    meaning: str | None = None
    us_rank: int = 0
    is_boy: bool = False
    is_girl: bool = False
    starting_letter: str
    syllable_count: int | None = None
    meaning_tags: list[str] = Field(default_factory=list)


class User(BaseModel):
    id: int
    email: str
    created_at: datetime


class Couple(BaseModel):
    id: int
    user1_id: int
    user2_id: int | None = None
    gender_filter: GenderFilter = "all"
    first_letter_filter: str = Field(default="all", pattern=_LETTER_FILTER_PATTERN)
    created_at: datetime

    def members(self) -> tuple[int, ...]:
        if self.user2_id is None:
            return (self.user1_id,)
        return (self.user1_id, self.user2_id)

    def partner_of(self, user_id: int) -> int | None:
        """Return the other member's id, or ``None`` while waiting for a partner."""
        return self.user2_id if self.user1_id == user_id else self.user1_id


class Rating(BaseModel):
    user_id: int
    name_id: int
    couple_id: int
    rating: int = Field(..., ge=RATING_MIN, le=RATING_MAX)
    created_at: datetime
    updated_at: datetime


class ShortListEntry(BaseModel):
    couple_id: int
    name_id: int
    user1_rating: int
    user2_rating: int
    added_at: datetime


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class IdentifyRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(..., min_length=3, max_length=320)


class AdminLoginRequest(BaseModel):
    token: str = Field(..., min_length=1)


class CreateCoupleRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    partner_email: str = Field(..., min_length=3, max_length=320)


class CoupleSettingsUpdate(BaseModel):
    gender_filter: GenderFilter | None = None
    first_letter_filter: str | None = Field(default=None, pattern=_LETTER_FILTER_PATTERN)


class RatingRequest(BaseModel):
    name_id: int = Field(..., ge=1)
    couple_id: int = Field(..., ge=1)
    rating: int = Field(..., ge=RATING_MIN, le=RATING_MAX)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class IdentifyResponse(BaseModel):
    user: User
    couple: Couple | None = None


class MemberOut(BaseModel):
    id: int
    email: str | None = None


class CoupleSettings(BaseModel):
    id: int
    gender_filter: GenderFilter
    first_letter_filter: str
    user1: MemberOut
    user2: MemberOut | None = None


class NextNameResponse(BaseModel):
    name: Name | None = None
    exhausted: bool = False
    message: str | None = None


class RatingOutcome(BaseModel):
    rating: Rating | None = None
    short_list_change: ShortListChange | None = None
    name: str | None = None


class RecentRating(BaseModel):
    name_id: int
    name: str
    rating: int
    updated_at: datetime


class RecentRatingsResponse(BaseModel):
    ratings: list[RecentRating]


class RatingStats(BaseModel):
    total_ratings: int
    short_list_count: int


class ShortListItem(BaseModel):
    name_id: int
    name: str
    user1_rating: int
    user2_rating: int
    added_at: datetime


class ShortListResponse(BaseModel):
    short_list: list[ShortListItem]
