from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from .models import ContactRequest, Intent

logger = logging.getLogger(__name__)

_GREETING_RE = re.compile(
    r"^(hi|hello|hey|greetings|howdy|good\s+(morning|afternoon|evening))[\s!.,?]*$",
    re.IGNORECASE,
)

_CONTACT_KEYWORDS = (
    "contact", "reach", "message", "email", "talk to", "speak with",
    "get in touch", "send", "hire", "recruiting", "opportunity",
)

_EXPERIENCE_KEYWORDS = (
    "experience", "background", "work", "job", "career", "skill", "education",
    "who is", "tell me about", "what does", "where did",
)

_OFF_SCOPE_KEYWORDS = (
    "system prompt", "ignore", "pretend", "jailbreak", "bypass", "override",
)

_OFF_TOPIC_RE = re.compile(
    r"^(what|how|why|when|where|who)\s+(is|are|was|were|do|does|did|can|could|would|should)"
    r"\s+(the|a|an)?\s*(weather|news|stock|bitcoin|crypto|politics|sports)",
    re.IGNORECASE,
)

_CONTACT_BLOCK_RE = re.compile(r"```CONTACT_READY\s*(\{.*?\})\s*```", re.DOTALL)

OFF_SCOPE_RESPONSE = (
    "I can only help with information about the site owner's professional "
    "background or help you send them a message. Is there something about "
    "their experience you'd like to know, or would you like to get in touch?"
)

GREETING_RESPONSE = (
    "Hi there! I can tell you about the site owner's professional background, "
    "or help you get a message to them. What can I help you with today?"
)


def classify_intent(message: str) -> Intent:
    """Keyword rules, checked in order: greeting, contact, experience, off-scope."""
    lower = message.lower().strip()

    if _GREETING_RE.match(lower):
        return Intent.greeting
    if any(k in lower for k in _CONTACT_KEYWORDS):
        return Intent.contact_intent
    if any(k in lower for k in _EXPERIENCE_KEYWORDS):
        return Intent.ask_experience
    if any(k in lower for k in _OFF_SCOPE_KEYWORDS) or _OFF_TOPIC_RE.match(lower):
        return Intent.off_scope
    return Intent.unclear


def extract_contact_request(reply: str) -> tuple[str, ContactRequest | None]:
    """
    Split a ``CONTACT_READY`` block off an assistant reply.

    Returns the visible reply text and the parsed contact details, or the
    reply unchanged and ``None`` when there is no well-formed block.
    """
    match = _CONTACT_BLOCK_RE.search(reply)
    if not match:
        return reply, None

    try:
        raw = json.loads(match.group(1))
        contact = ContactRequest(
            first_name=raw.get("firstName", ""),
            last_name=raw.get("lastName", ""),
            email=raw.get("email", ""),
            message=raw.get("message", ""),
            company=raw.get("company", ""),
            reason=raw.get("reason", ""),
        )
    except (json.JSONDecodeError, AttributeError, ValidationError):
        logger.warning("Malformed CONTACT_READY block in assistant reply", exc_info=True)
        return reply, None

    visible = (reply[: match.start()] + reply[match.end():]).strip()
    return visible, contact
