from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class Intent(str, Enum):
    ask_experience = "ASK_EXPERIENCE"
    contact_intent = "CONTACT_INTENT"
    off_scope = "OFF_SCOPE"
    greeting = "GREETING"
    unclear = "UNCLEAR"


class ConversationTurn(BaseModel):
    role: str = Field(..., pattern=r"^(user|assistant)$")
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    session_id: str | None = None
    conversation_id: str | None = None
    conversation_history: list[ConversationTurn] = Field(default_factory=list)


class TokenUsage(BaseModel):
    input_tokens: int
    output_tokens: int


class ChatResponse(BaseModel):
    response: str
    intent: Intent
    session_id: str
    conversation_id: str
    usage: TokenUsage | None = None


class LimitResult(BaseModel):
    allowed: bool
    reason: str | None = None
    retry_after_seconds: int | None = None


class ContactRequest(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    message: str = ""
    company: str = ""
    reason: str = ""


_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ContactFormRequest(BaseModel):
    """Contact form body; ``notify_intent_only`` posts arrive while the form is still being filled."""

    name: str = ""
    email: str = ""
    message: str = ""
    company: str = ""
    reason: str = ""
    conversation_id: str | None = None
    notify_intent_only: bool = False

    @model_validator(mode="after")
    def _check_full_message(self) -> "ContactFormRequest":
        if self.notify_intent_only:
            return self
        if not (self.name.strip() and self.email.strip() and self.message.strip()):
            raise ValueError("Missing required fields")
        if not _EMAIL_RE.match(self.email.strip()):
            raise ValueError("Invalid email address")
        return self

    def to_contact(self) -> ContactRequest:
        first, _, last = self.name.strip().partition(" ")
        return ContactRequest(
            first_name=first,
            last_name=last.strip(),
            email=self.email.strip(),
            message=self.message,
            company=self.company,
            reason=self.reason,
        )
