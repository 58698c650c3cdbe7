from __future__ import annotations

from collections import Counter
from typing import Any


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    selections = [e for e in events if e["type"] == "next_name"]
    ratings = [e for e in events if e["type"] == "rating"]
    chats = [e for e in events if e["type"] == "chat"]
    contacts = [e for e in events if e["type"] == "contact"]

    # Selection latency
    times = [s["response_time_ms"] for s in selections if "response_time_ms" in s]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0
    exhausted = sum(1 for s in selections if s.get("exhausted"))

    # Rating distribution
    value_counter: Counter[int] = Counter(r["rating"] for r in ratings if "rating" in r)
    distribution = {str(v): value_counter.get(v, 0) for v in range(1, 6)}
    avg_rating = (
        round(sum(v * c for v, c in value_counter.items()) / sum(value_counter.values()), 2)
        if value_counter else 0.0
    )

    # Short-list churn
    added = sum(1 for r in ratings if r.get("short_list_change") == "added")
    removed = sum(1 for r in ratings if r.get("short_list_change") == "removed")

    # Chat intents
    intent_counter: Counter[str] = Counter(c.get("intent", "UNKNOWN") for c in chats)
    top_intents = [{"name": n, "count": c} for n, c in intent_counter.most_common()]

    return {
        "total_selections": len(selections),
        "exhausted_selections": exhausted,
        "avg_selection_time_ms": avg_time,
        "total_ratings": len(ratings),
        "avg_rating": avg_rating,
        "rating_distribution": distribution,
        "short_list": {"added": added, "removed": removed},
        "chat": {
            "total_messages": len(chats),
            "intents": top_intents,
            "contact_submissions": len(contacts),
        },
    }
