from __future__ import annotations

import hashlib
import logging
import os
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from .models import ContactRequest

logger = logging.getLogger(__name__)

# Conversations idle for longer than this are dropped by ``cleanup_conversations``.
CONVERSATION_RETENTION_SECONDS = 7 * 24 * 3600

_conversations: dict[str, dict[str, Any]] = {}
_lock = threading.Lock()

_ip_salt = os.environ.get("IP_SALT")
if not _ip_salt:
    _ip_salt = uuid.uuid4().hex
    logger.warning(
        "IP_SALT not set, using a per-process salt; anonymized IPs will change on restart",
    )


def anonymize_ip(ip: str) -> str:
    return hashlib.sha256((ip + _ip_salt).encode()).hexdigest()[:16]


def generate_conversation_id() -> str:
    return f"conv_{int(time.time() * 1000)}_{uuid.uuid4()}"


def start_conversation(
    conversation_id: str,
    session_id: str,
    ip: str,
    now: float | None = None,
) -> None:
    now = time.time() if now is None else now
    log = {
        "id": conversation_id,
        "session_id": session_id,
        "anonymized_ip": anonymize_ip(ip),
        "start_time": now,
        "last_activity": now,
        "messages": [],
        "contact_attempt": None,
    }
    with _lock:
        _conversations.setdefault(conversation_id, log)


def log_message(
    conversation_id: str,
    role: str,
    content: str,
    intent: str | None = None,
    tokens_used: dict[str, int] | None = None,
) -> None:
    now = time.time()
    with _lock:
        log = _conversations.get(conversation_id)
        if log is not None:
            log["messages"].append({
                "role": role,
                "content": content,
                "timestamp": now,
                "intent": intent,
                "tokens_used": tokens_used,
            })
            log["last_activity"] = now
    if log is None:
        logger.warning("Conversation %s not found, message not logged", conversation_id)


def mark_contact_attempt(
    conversation_id: str,
    contact: ContactRequest | None = None,
    completed: bool = False,
) -> bool:
    """Record a contact attempt on a conversation; returns False if it is unknown."""
    contact = contact or ContactRequest()
    attempt = {
        "started": True,
        "completed": completed,
        "name": f"{contact.first_name} {contact.last_name}".strip(),
        "email": contact.email,
        "company": contact.company,
    }
    with _lock:
        log = _conversations.get(conversation_id)
        if log is None:
            return False
        log["contact_attempt"] = attempt
        log["last_activity"] = time.time()
    return True


def get_conversation(conversation_id: str) -> dict[str, Any] | None:
    with _lock:
        return _conversations.get(conversation_id)


def get_conversation_stats(now: float | None = None) -> dict[str, int]:
    now = time.time() if now is None else now
    today = datetime.fromtimestamp(now, tz=timezone.utc).date()

    with _lock:
        logs = [(log["start_time"], log.get("contact_attempt")) for log in _conversations.values()]

    started_today = 0
    pending = 0
    for start_time, attempt in logs:
        if datetime.fromtimestamp(start_time, tz=timezone.utc).date() == today:
            started_today += 1
        if attempt and attempt["started"] and not attempt["completed"]:
            pending += 1

    return {
        "total_conversations": len(logs),
        "conversations_today": started_today,
        "pending_contacts": pending,
    }


def cleanup_conversations(
    max_idle_seconds: float = CONVERSATION_RETENTION_SECONDS,
    now: float | None = None,
) -> int:
    """Drop conversations idle for longer than *max_idle_seconds*; returns how many."""
    now = time.time() if now is None else now
    with _lock:
        stale = [cid for cid, log in _conversations.items()
                 if now - log["last_activity"] > max_idle_seconds]
        for cid in stale:
            del _conversations[cid]
    if stale:
        logger.info("Dropped %d idle conversations", len(stale))
    return len(stale)


def clear_conversations() -> None:
    with _lock:
        _conversations.clear()
