from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LimitsConfig:
    """Hard caps on chatbot traffic and LLM spend."""

    max_requests_per_minute_per_ip: int = 10
    max_requests_per_hour: int = 100  # circuit breaker, all IPs
    circuit_breaker_cooldown_seconds: int = 300

    max_turns_per_conversation: int = 12
    max_input_tokens_per_conversation: int = 3000
    max_output_tokens_per_conversation: int = 1500
    max_conversation_seconds: int = 8 * 60

    daily_cost_cap_usd: float = 5.0
    monthly_cost_cap_usd: float = 100.0

    input_token_price_per_million: float = 3.00
    output_token_price_per_million: float = 15.00

    # Rough token estimate for a message: chars / 4, plus the system prompt.
    chars_per_token: int = 4
    system_prompt_tokens: int = 500


DEFAULT_LIMITS_CONFIG = LimitsConfig()
