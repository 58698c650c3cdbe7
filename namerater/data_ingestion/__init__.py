"""
Name catalog ingestion package.

Responsibilities:
- Read a raw per-gender name-count CSV.
- Normalize it into the canonical Name schema (flags, rank, letter, tags).
- Persist the processed catalog locally for the name selection engine.
"""
