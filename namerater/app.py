from __future__ import annotations

import logging
import os
import time

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events, record_event
from .auth.admin import admin_configured, verify_admin_token
from .auth.dependencies import (
    check_membership,
    require_admin,
    require_member,
    require_path_member,
    require_user,
)
from .chat import conversation_log, limits
from .chat.intent import (
    GREETING_RESPONSE,
    OFF_SCOPE_RESPONSE,
    classify_intent,
    extract_contact_request,
)
from .chat.models import ChatRequest, ChatResponse, ContactFormRequest, Intent, TokenUsage
from .llm.config import DEFAULT_LLM_CONFIG
from .llm.groq_client import generate_reply
from .logging_config import setup_logging
from .names.config import RECENT_RATINGS_LIMIT
from .names.couples import create_couple, get_settings, identify, update_settings
from .names.data_store import DataStore, get_store
from .names.errors import NameRaterError
from .names.models import (
    AdminLoginRequest,
    Couple,
    CoupleSettings,
    CoupleSettingsUpdate,
    CreateCoupleRequest,
    IdentifyRequest,
    IdentifyResponse,
    NextNameResponse,
    RatingOutcome,
    RatingRequest,
    RatingStats,
    RecentRatingsResponse,
    ShortListResponse,
)
from .names.ranker import select_next
from .names.ratings import (
    list_short_list,
    rating_stats,
    recent_ratings,
    remove_rating,
    submit_rating,
)

setup_logging()
logger = logging.getLogger(__name__)

# Peers allowed to set X-Forwarded-For / X-Real-IP, e.g. "127.0.0.1,10.0.0.2".
TRUSTED_PROXIES = frozenset(
    p.strip() for p in os.environ.get("TRUSTED_PROXIES", "").split(",") if p.strip()
)
CLEANUP_INTERVAL_SECONDS = 60.0
_last_cleanup = 0.0

app = FastAPI(title="Baby Name Rater API", version="1.0.0")
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "name-rater-secret-change-in-production"),
    max_age=60 * 60 * 24 * 365,
    same_site="lax",
)


@app.exception_handler(NameRaterError)
def name_rater_error(request: Request, exc: NameRaterError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metadata")
def metadata(store: DataStore = Depends(get_store)) -> dict:
    catalog = store.catalog
    return {
        "total_names": catalog.count(),
        "origins": catalog.origins(),
        "letters": catalog.letters(),
    }


# ── Identification ───────────────────────────────────────────────────────


@app.post("/auth/identify", response_model=IdentifyResponse)
def auth_identify(
    body: IdentifyRequest,
    request: Request,
    store: DataStore = Depends(get_store),
) -> IdentifyResponse:
    user, couple = identify(store, body.email)
    request.session["user"] = {"id": user.id, "email": user.email}
    return IdentifyResponse(user=user, couple=couple)


@app.post("/auth/admin")
def auth_admin(body: AdminLoginRequest, request: Request) -> dict:
    if not admin_configured() or not verify_admin_token(body.token):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session["admin"] = True
    return {"status": "ok", "role": "admin"}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "logged_out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return user


# ── Couples ──────────────────────────────────────────────────────────────


@app.post("/couples", response_model=Couple)
def couples_create(
    body: CreateCoupleRequest,
    user: dict = Depends(require_user),
    store: DataStore = Depends(get_store),
) -> Couple:
    return create_couple(store, user["id"], body.partner_email)


@app.get("/couples/{couple_id}/settings", response_model=CoupleSettings)
def couples_settings(
    couple: Couple = Depends(require_path_member),
    store: DataStore = Depends(get_store),
) -> CoupleSettings:
    return get_settings(store, couple.id)


@app.patch("/couples/{couple_id}/settings", response_model=Couple)
def couples_update_settings(
    body: CoupleSettingsUpdate,
    couple: Couple = Depends(require_path_member),
    store: DataStore = Depends(get_store),
) -> Couple:
    return update_settings(
        store,
        couple.id,
        gender_filter=body.gender_filter,
        first_letter_filter=body.first_letter_filter,
    )


# ── Names & ratings ──────────────────────────────────────────────────────


@app.get("/names/next", response_model=NextNameResponse)
def names_next(
    exclude_name_id: int | None = Query(default=None, ge=1),
    couple: Couple = Depends(require_member),
    user: dict = Depends(require_user),
    store: DataStore = Depends(get_store),
) -> NextNameResponse:
    start_time = time.time()

    # Membership was checked above, so None here means the filtered catalog is empty.
    name = select_next(store, user["id"], couple.id, exclude_name_id)

    elapsed_ms = round((time.time() - start_time) * 1000, 1)
    record_event("next_name", {
        "couple_id": couple.id,
        "exhausted": name is None,
        "gender_filter": couple.gender_filter,
        "first_letter_filter": couple.first_letter_filter,
        "response_time_ms": elapsed_ms,
    })

    if name is None:
        return NextNameResponse(
            name=None,
            exhausted=True,
            message="You have rated all available names!",
        )
    return NextNameResponse(name=name, exhausted=False)


@app.post("/ratings", response_model=RatingOutcome)
def ratings_submit(
    body: RatingRequest,
    user: dict = Depends(require_user),
    store: DataStore = Depends(get_store),
) -> RatingOutcome:
    check_membership(store, user, body.couple_id)
    outcome = submit_rating(store, user["id"], body.name_id, body.couple_id, body.rating)
    record_event("rating", {
        "couple_id": body.couple_id,
        "rating": body.rating,
        "short_list_change": outcome.short_list_change,
    })
    return outcome


@app.delete("/ratings/{name_id}", response_model=RatingOutcome)
def ratings_remove(
    name_id: int,
    couple: Couple = Depends(require_member),
    user: dict = Depends(require_user),
    store: DataStore = Depends(get_store),
) -> RatingOutcome:
    return remove_rating(store, user["id"], name_id, couple.id)


@app.get("/ratings/recent", response_model=RecentRatingsResponse)
def ratings_recent(
    limit: int = Query(default=RECENT_RATINGS_LIMIT, ge=1, le=50),
    user: dict = Depends(require_user),
    store: DataStore = Depends(get_store),
) -> RecentRatingsResponse:
    return RecentRatingsResponse(ratings=recent_ratings(store, user["id"], limit=limit))


@app.get("/ratings/stats", response_model=RatingStats)
def ratings_stats(
    couple: Couple = Depends(require_member),
    user: dict = Depends(require_user),
    store: DataStore = Depends(get_store),
) -> RatingStats:
    return rating_stats(store, user["id"], couple.id)


@app.get("/shortlist", response_model=ShortListResponse)
def shortlist(
    couple: Couple = Depends(require_member),
    store: DataStore = Depends(get_store),
) -> ShortListResponse:
    return ShortListResponse(short_list=list_short_list(store, couple.id))


# ── Chat endpoint ────────────────────────────────────────────────────────


def _client_ip(request: Request) -> str:
    """Socket peer address; forwarding headers count only when the peer is a trusted proxy."""
    peer = request.client.host if request.client else "unknown"
    if peer not in TRUSTED_PROXIES:
        return peer
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # The rightmost entry is the one our proxy appended.
        return forwarded.split(",")[-1].strip()
    return request.headers.get("x-real-ip") or peer


def _periodic_cleanup(now: float | None = None) -> None:
    global _last_cleanup
    now = time.time() if now is None else now
    if now - _last_cleanup < CLEANUP_INTERVAL_SECONDS:
        return
    _last_cleanup = now
    limits.cleanup_sessions(now=now)
    conversation_log.cleanup_conversations(now=now)


def _limit_error(status_code: int, reason: str | None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": reason, "fallback_to_form": True, **extra},
    )


@app.post("/chat", response_model=ChatResponse)
def chat(body: ChatRequest, request: Request):
    ip = _client_ip(request)
    _periodic_cleanup()

    # 1. Rate limits and cost caps
    ip_check = limits.check_ip_rate_limit(ip)
    if not ip_check.allowed:
        return _limit_error(429, ip_check.reason, retry_after_seconds=ip_check.retry_after_seconds)

    circuit_check = limits.check_circuit_breaker()
    if not circuit_check.allowed:
        return _limit_error(
            503, circuit_check.reason, retry_after_seconds=circuit_check.retry_after_seconds,
        )

    cost_check = limits.check_cost_caps()
    if not cost_check.allowed:
        return _limit_error(503, cost_check.reason)

    # 2. Session and conversation bookkeeping
    estimated_tokens = limits.estimate_input_tokens(body.message)
    session_id = body.session_id or limits.generate_session_id()
    conversation_id = body.conversation_id or conversation_log.generate_conversation_id()
    conversation_log.start_conversation(conversation_id, session_id, ip)

    session_check = limits.check_session_limits(session_id, estimated_tokens)
    if not session_check.allowed:
        return _limit_error(
            429, session_check.reason, session_id=session_id, conversation_id=conversation_id,
        )

    # 3. Intent
    intent = classify_intent(body.message)
    conversation_log.log_message(conversation_id, "user", body.message, intent=intent.value)
    record_event("chat", {"intent": intent.value})

    # 4. Canned replies that skip the LLM
    canned = None
    if intent is Intent.off_scope:
        canned = OFF_SCOPE_RESPONSE
    elif intent is Intent.greeting and not body.conversation_history:
        canned = GREETING_RESPONSE
    if canned is not None:
        conversation_log.log_message(conversation_id, "assistant", canned, intent=intent.value)
        return ChatResponse(
            response=canned,
            intent=intent,
            session_id=session_id,
            conversation_id=conversation_id,
        )

    if intent is Intent.contact_intent:
        log = conversation_log.get_conversation(conversation_id)
        if log and not log["contact_attempt"]:
            conversation_log.mark_contact_attempt(conversation_id)

    # 5. LLM reply
    history = [turn.model_dump() for turn in body.conversation_history]
    reply = generate_reply(body.message, history)
    if reply is None:
        detail = (
            "Chat service is not configured. Please use the contact form."
            if not DEFAULT_LLM_CONFIG.api_key
            else "An error occurred. Please try again or use the contact form."
        )
        return _limit_error(503, detail, session_id=session_id, conversation_id=conversation_id)

    limits.update_session(session_id, reply.input_tokens, reply.output_tokens)

    text, contact = extract_contact_request(reply.text)
    if contact is not None:
        conversation_log.mark_contact_attempt(conversation_id, contact, completed=True)
        logger.info("Contact request captured in conversation %s", conversation_id)

    conversation_log.log_message(
        conversation_id,
        "assistant",
        text,
        intent=intent.value,
        tokens_used={"input": reply.input_tokens, "output": reply.output_tokens},
    )

    return ChatResponse(
        response=text,
        intent=intent,
        session_id=session_id,
        conversation_id=conversation_id,
        usage=TokenUsage(input_tokens=reply.input_tokens, output_tokens=reply.output_tokens),
    )


@app.post("/contact")
def contact(body: ContactFormRequest) -> dict:
    if body.notify_intent_only:
        if body.conversation_id and (body.name or body.email):
            conversation_log.mark_contact_attempt(body.conversation_id, body.to_contact())
        return {"success": True}

    if body.conversation_id:
        conversation_log.mark_contact_attempt(
            body.conversation_id, body.to_contact(), completed=True,
        )
    logger.info("Contact form submitted")
    record_event("contact", {"from_chat": body.conversation_id is not None})
    return {"success": True}


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.get("/analytics")
def analytics(admin: dict = Depends(require_admin)) -> dict:
    return compute_analytics(get_events())


@app.get("/chat/stats")
def chat_stats(admin: dict = Depends(require_admin)) -> dict:
    usage = limits.get_usage_stats()
    conversations = conversation_log.get_conversation_stats()
    llm_configured = bool(DEFAULT_LLM_CONFIG.api_key)

    daily_pct = usage["daily_cost"] / usage["daily_cost_limit"] * 100
    monthly_pct = usage["monthly_cost"] / usage["monthly_cost_limit"] * 100

    if not llm_configured:
        status, status_message = "offline", "Groq API not configured"
    elif daily_pct >= 100 or monthly_pct >= 100:
        status, status_message = "offline", "Cost cap exceeded"
    elif daily_pct >= 80 or monthly_pct >= 80:
        status, status_message = "warning", "Approaching cost limit"
    else:
        status, status_message = "healthy", "All systems operational"

    def _cap_status(pct: float) -> str:
        return "exceeded" if pct >= 100 else "warning" if pct >= 80 else "ok"

    warnings = []
    if daily_pct >= 80:
        warnings.append(f"Daily cost at {daily_pct:.1f}%")
    if monthly_pct >= 80:
        warnings.append(f"Monthly cost at {monthly_pct:.1f}%")

    return {
        "status": status,
        "status_message": status_message,
        "services": {
            "chatbot": "configured" if llm_configured else "not configured",
            "persistence": "in-memory",
        },
        "costs": {
            "daily": {
                "spent": round(usage["daily_cost"], 4),
                "limit": usage["daily_cost_limit"],
                "percent_used": round(daily_pct, 1),
                "status": _cap_status(daily_pct),
            },
            "monthly": {
                "spent": round(usage["monthly_cost"], 4),
                "limit": usage["monthly_cost_limit"],
                "percent_used": round(monthly_pct, 1),
                "status": _cap_status(monthly_pct),
            },
        },
        "conversations": {
            "total": conversations["total_conversations"],
            "today": conversations["conversations_today"],
            "pending_contacts": conversations["pending_contacts"],
        },
        "warnings": warnings,
    }
