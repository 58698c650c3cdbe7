from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import numpy as np
import pandas as pd

from .models import Name

_PROCESSED_DIR = Path(__file__).resolve().parent.parent / "data" / "processed"
NAMES_CSV = _PROCESSED_DIR / "names.csv"

TAG_SEPARATOR = "|"

# Lightweight projection the ranker scores on.
CANDIDATE_COLUMNS = ["id", "name", "starting_letter", "origin", "us_rank", "meaning_tags_list"]


def _split_tags(value) -> list[str]:
    if not isinstance(value, str):
        return []
    return [t.strip().lower() for t in value.split(TAG_SEPARATOR) if t.strip()]


def prepare_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Normalise a raw names frame into the shape ``NameCatalog`` queries."""
    df = df.copy()
    df["id"] = df["id"].astype(int)
    df["us_rank"] = pd.to_numeric(df["us_rank"], errors="coerce").fillna(0).astype(int)
    df["is_boy"] = df["is_boy"].astype(str).str.lower().isin(["true", "1", "t", "yes"])
    df["is_girl"] = df["is_girl"].astype(str).str.lower().isin(["true", "1", "t", "yes"])
    df["starting_letter"] = df["starting_letter"].fillna("").astype(str).str.upper()
    if "name_lower" not in df.columns:
        df["name_lower"] = df["name"].str.lower()
    if "origin" not in df.columns:
        df["origin"] = None
    df["meaning_tags_list"] = (
        df["meaning_tags"].apply(_split_tags) if "meaning_tags" in df.columns else [[] for _ in range(len(df))]
    )
    df.index = pd.Index(df["id"].tolist())
    return df


def load_catalog(path: Path = NAMES_CSV) -> "NameCatalog":
    return NameCatalog(prepare_frame(pd.read_csv(path)))


class NameCatalog:
    """Read-only name reference data backed by a DataFrame indexed by id."""

    def __init__(self, df: pd.DataFrame) -> None:
        self._df = df

    @property
    def frame(self) -> pd.DataFrame:
        return self._df

    def count(self) -> int:
        return len(self._df)

    def _filter_mask(self, gender_filter: str, first_letter_filter: str) -> pd.Series:
        df = self._df
        mask = pd.Series(True, index=df.index)
        if gender_filter == "boy":
            mask &= df["is_boy"]
        elif gender_filter == "girl":
            mask &= df["is_girl"]
        if first_letter_filter != "all":
            mask &= df["starting_letter"] == first_letter_filter
        return mask

    def sample(
        self,
        gender_filter: str,
        first_letter_filter: str,
        exclude_ids: Iterable[int],
        limit: int,
        rng: np.random.Generator,
    ) -> pd.DataFrame:
        """Uniform random sample of at most *limit* filtered names, minus *exclude_ids*."""
        mask = self._filter_mask(gender_filter, first_letter_filter)
        excluded = list(exclude_ids)
        if excluded:
            mask &= ~self._df.index.isin(excluded)

        pool = self._df.loc[mask, CANDIDATE_COLUMNS]
        if pool.empty:
            return pool
        return pool.sample(n=min(limit, len(pool)), random_state=rng)

    def get(self, name_id: int) -> Name | None:
        if name_id not in self._df.index:
            return None
        return _row_to_name(self._df.loc[name_id])

    def lookup(self, name_ids: Iterable[int]) -> pd.DataFrame:
        ids = [i for i in name_ids if i in self._df.index]
        return self._df.loc[ids]

    def origins(self) -> list[str]:
        return sorted(self._df["origin"].dropna().unique().tolist())

    def letters(self) -> list[str]:
        return sorted(self._df["starting_letter"].unique().tolist())


def _row_to_name(row: pd.Series) -> Name:
    syllables = row.get("syllable_count")
    meaning = row.get("meaning")
    origin = row.get("origin")
    return Name(
        id=int(row["id"]),
        name=row["name"],
        name_lower=row["name_lower"],
        origin=origin if pd.notna(origin) else None,
        meaning=meaning if pd.notna(meaning) else None,
        us_rank=int(row["us_rank"]),
        is_boy=bool(row["is_boy"]),
        is_girl=bool(row["is_girl"]),
        starting_letter=row["starting_letter"],
        syllable_count=int(syllables) if pd.notna(syllables) else None,
        meaning_tags=list(row["meaning_tags_list"]),
    )
