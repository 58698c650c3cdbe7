"""
Chatbot rate limiting and cost ledger.

Everything lives in process memory and resets on restart:
- per-IP fixed windows of one minute,
- a global circuit breaker over the last hour,
- per-session turn / token / duration caps,
- a 30-day ledger of LLM spend checked against daily and monthly caps.

Handlers run in a thread pool, so every read-modify-write of the shared
maps happens under ``_lock``.
"""
from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from typing import Any

from .config import DEFAULT_LIMITS_CONFIG, LimitsConfig
from .models import LimitResult

logger = logging.getLogger(__name__)

_MINUTE = 60.0
_HOUR = 3600.0
_DAY = 24 * _HOUR
_THIRTY_DAYS = 30 * _DAY

_ip_windows: dict[str, dict[str, float]] = {}
_sessions: dict[str, dict[str, float]] = {}
_cost_ledger: list[dict[str, float]] = []
_lock = threading.Lock()


def _now(now: float | None) -> float:
    return time.time() if now is None else now


def check_ip_rate_limit(
    ip: str,
    config: LimitsConfig = DEFAULT_LIMITS_CONFIG,
    now: float | None = None,
) -> LimitResult:
    now = _now(now)
    with _lock:
        record = _ip_windows.get(ip)

        if not record or now > record["reset_at"]:
            _ip_windows[ip] = {"count": 1, "reset_at": now + _MINUTE}
            return LimitResult(allowed=True)

        if record["count"] >= config.max_requests_per_minute_per_ip:
            retry_after = math.ceil(record["reset_at"] - now)
        else:
            record["count"] += 1
            return LimitResult(allowed=True)

    logger.info("IP rate limit hit")
    return LimitResult(
        allowed=False,
        reason="Rate limit exceeded. Please wait before sending another message.",
        retry_after_seconds=retry_after,
    )


def check_circuit_breaker(
    config: LimitsConfig = DEFAULT_LIMITS_CONFIG,
    now: float | None = None,
) -> LimitResult:
    now = _now(now)
    hour_ago = now - _HOUR
    with _lock:
        windows = list(_ip_windows.values())
    total = sum(r["count"] for r in windows if r["reset_at"] > hour_ago)

    if total >= config.max_requests_per_hour:
        logger.warning("Chat circuit breaker open: %d requests in the last hour", total)
        return LimitResult(
            allowed=False,
            reason=(
                "Service temporarily unavailable due to high demand. "
                "Please use the contact form below."
            ),
            retry_after_seconds=config.circuit_breaker_cooldown_seconds,
        )
    return LimitResult(allowed=True)


def check_session_limits(
    session_id: str,
    input_tokens: int,
    config: LimitsConfig = DEFAULT_LIMITS_CONFIG,
    now: float | None = None,
) -> LimitResult:
    now = _now(now)
    with _lock:
        session = _sessions.setdefault(
            session_id, {"turns": 0, "input_tokens": 0, "output_tokens": 0, "started_at": now},
        )
        session = dict(session)

    if now - session["started_at"] > config.max_conversation_seconds:
        return LimitResult(
            allowed=False,
            reason=(
                "Conversation time limit reached. Please start a new conversation "
                "or use the contact form."
            ),
        )
    if (
        session["turns"] >= config.max_turns_per_conversation
        or session["output_tokens"] >= config.max_output_tokens_per_conversation
    ):
        return LimitResult(
            allowed=False,
            reason=(
                "Maximum conversation length reached. "
                "Please use the contact form to send a message."
            ),
        )
    if session["input_tokens"] + input_tokens > config.max_input_tokens_per_conversation:
        return LimitResult(
            allowed=False,
            reason="Message too long. Please keep your message concise or use the contact form.",
        )
    return LimitResult(allowed=True)


def calculate_cost(
    input_tokens: int,
    output_tokens: int,
    config: LimitsConfig = DEFAULT_LIMITS_CONFIG,
) -> float:
    return (
        input_tokens / 1_000_000 * config.input_token_price_per_million
        + output_tokens / 1_000_000 * config.output_token_price_per_million
    )


def update_session(
    session_id: str,
    input_tokens: int,
    output_tokens: int,
    config: LimitsConfig = DEFAULT_LIMITS_CONFIG,
    now: float | None = None,
) -> None:
    """Count a completed turn and record its cost in the ledger."""
    now = _now(now)
    cost = calculate_cost(input_tokens, output_tokens, config)
    cutoff = now - _THIRTY_DAYS

    with _lock:
        session = _sessions.get(session_id)
        if session:
            session["turns"] += 1
            session["input_tokens"] += input_tokens
            session["output_tokens"] += output_tokens

        _cost_ledger.append({"timestamp": now, "cost": cost})
        while _cost_ledger and _cost_ledger[0]["timestamp"] < cutoff:
            _cost_ledger.pop(0)


def _spend_since(since: float) -> float:
    with _lock:
        entries = list(_cost_ledger)
    return sum(e["cost"] for e in entries if e["timestamp"] > since)


def check_cost_caps(
    config: LimitsConfig = DEFAULT_LIMITS_CONFIG,
    now: float | None = None,
) -> LimitResult:
    now = _now(now)
    unavailable = "Chat service is currently unavailable. Please use the contact form below."

    if _spend_since(now - _DAY) >= config.daily_cost_cap_usd:
        logger.warning("Daily chat cost cap reached")
        return LimitResult(allowed=False, reason=unavailable)
    if _spend_since(now - _THIRTY_DAYS) >= config.monthly_cost_cap_usd:
        logger.warning("Monthly chat cost cap reached")
        return LimitResult(allowed=False, reason=unavailable)
    return LimitResult(allowed=True)


def get_usage_stats(
    config: LimitsConfig = DEFAULT_LIMITS_CONFIG,
    now: float | None = None,
) -> dict[str, Any]:
    now = _now(now)
    return {
        "daily_cost": _spend_since(now - _DAY),
        "monthly_cost": _spend_since(now - _THIRTY_DAYS),
        "daily_cost_limit": config.daily_cost_cap_usd,
        "monthly_cost_limit": config.monthly_cost_cap_usd,
    }


def estimate_input_tokens(message: str, config: LimitsConfig = DEFAULT_LIMITS_CONFIG) -> int:
    return math.ceil(len(message) / config.chars_per_token) + config.system_prompt_tokens


def generate_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def cleanup_sessions(
    config: LimitsConfig = DEFAULT_LIMITS_CONFIG,
    now: float | None = None,
) -> None:
    """Drop sessions past twice the duration cap and IP windows idle for an hour."""
    now = _now(now)
    max_age = config.max_conversation_seconds * 2
    with _lock:
        for sid in [s for s, v in _sessions.items() if now - v["started_at"] > max_age]:
            del _sessions[sid]
        for ip in [i for i, r in _ip_windows.items() if now > r["reset_at"] + _HOUR]:
            del _ip_windows[ip]


def clear_limits() -> None:
    with _lock:
        _ip_windows.clear()
        _sessions.clear()
        _cost_ledger.clear()
