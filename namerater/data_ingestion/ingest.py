from __future__ import annotations

import logging
import re
from pathlib import Path

import pandas as pd

from ..names.catalog import TAG_SEPARATOR
from .config import DEFAULT_INGESTION_CONFIG, IngestionConfig

logger = logging.getLogger(__name__)

CANONICAL_COLUMNS: list[str] = [
    "id",
    "name",
    "name_lower",
    "origin",
    "meaning",
    "us_rank",
    "is_boy",
    "is_girl",
    "starting_letter",
    "syllable_count",
    "meaning_tags",
]

_STOPWORDS = {
    "a", "an", "and", "as", "at", "by", "for", "from", "in", "is", "it", "my",
    "of", "on", "or", "the", "to", "who", "with", "one", "like",
}

_VOWEL_GROUP_RE = re.compile(r"[aeiouy]+")
_WORD_RE = re.compile(r"[a-z]+")


def _count_syllables(name: str) -> int:
    word = name.lower()
    groups = _VOWEL_GROUP_RE.findall(word)
    count = len(groups)
    # Silent trailing "e" (Jane, Clementine)
    if word.endswith("e") and not word.endswith("ee") and count > 1:
        count -= 1
    return max(count, 1)


def _meaning_tags(meaning: str | None, limit: int) -> str:
    if not isinstance(meaning, str):
        return ""
    tags: list[str] = []
    for word in _WORD_RE.findall(meaning.lower()):
        if len(word) < 3 or word in _STOPWORDS or word in tags:
            continue
        tags.append(word)
        if len(tags) == limit:
            break
    return TAG_SEPARATOR.join(tags)


def _gender_flag(value) -> str | None:
    raw = str(value).strip().lower()
    if raw in ("m", "male", "boy"):
        return "boy"
    if raw in ("f", "female", "girl"):
        return "girl"
    return None


def run_ingestion(config: IngestionConfig = DEFAULT_INGESTION_CONFIG) -> Path:
    """
    Build the canonical names catalog.

    Steps:
    - Read the raw CSV (one row per name and gender, with a usage count).
    - Merge genders per name, rank by total count, derive letter/syllables/tags.
    - Persist the catalog as CSV for the data store.
    """
    config.processed_data_dir.mkdir(parents=True, exist_ok=True)

    df = pd.read_csv(config.raw_csv)

    # Map whichever raw column names the source uses onto ours.
    def _first_present(columns: list[str]) -> str | None:
        for col in columns:
            if col in df.columns:
                return col
        return None

    col_name = _first_present(["name", "first_name", "Name"])
    col_gender = _first_present(["gender", "sex", "Gender"])
    col_count = _first_present(["count", "births", "number", "Count"])
    col_origin = _first_present(["origin", "Origin"])
    col_meaning = _first_present(["meaning", "Meaning"])

    if col_name is None:
        raise ValueError(f"No name column in {config.raw_csv}")

    raw = pd.DataFrame()
    raw["name"] = df[col_name].astype(str).str.strip()
    raw = raw[raw["name"].str.match(r"^[A-Za-z][A-Za-z'\-]*$")].copy()
    raw["name_lower"] = raw["name"].str.lower()
    raw["gender"] = df.loc[raw.index, col_gender].apply(_gender_flag) if col_gender else None
    raw["count"] = (
        pd.to_numeric(df.loc[raw.index, col_count], errors="coerce").fillna(0)
        if col_count else 0
    )
    raw["origin"] = df.loc[raw.index, col_origin] if col_origin else pd.NA
    raw["meaning"] = df.loc[raw.index, col_meaning] if col_meaning else pd.NA

    grouped = raw.groupby("name_lower", sort=False)
    # Display spelling from the most common row.
    top_rows = grouped["count"].idxmax()
    display_names = pd.Series(raw.loc[top_rows, "name"].to_numpy(), index=top_rows.index)
    canonical = pd.DataFrame({
        "name": display_names,
        "total": grouped["count"].sum(),
        "is_boy": grouped["gender"].apply(lambda s: (s == "boy").any()),
        "is_girl": grouped["gender"].apply(lambda s: (s == "girl").any()),
        "origin": grouped["origin"].first(),
        "meaning": grouped["meaning"].first(),
    }).reset_index()

    canonical = canonical.sort_values(["total", "name_lower"], ascending=[False, True])
    canonical["us_rank"] = range(1, len(canonical) + 1)
    canonical["id"] = canonical["us_rank"]
    canonical["starting_letter"] = canonical["name"].str[0].str.upper()
    canonical["syllable_count"] = canonical["name"].apply(_count_syllables)
    canonical["meaning_tags"] = canonical["meaning"].apply(
        lambda m: _meaning_tags(m, config.max_meaning_tags)
    )

    canonical = canonical[CANONICAL_COLUMNS]

    output_path = config.processed_path
    canonical.to_csv(output_path, index=False)
    logger.info("Wrote %d names to %s", len(canonical), output_path)
    return output_path


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    path = run_ingestion()
    print(f"Ingestion complete. Processed data saved to: {path}")
