"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Build the chatbot system prompt from the site owner's profile data.
- Call Groq for a chat reply and report token usage.
- Degrade to ``None`` when the LLM is unavailable so callers can fall back.
"""
