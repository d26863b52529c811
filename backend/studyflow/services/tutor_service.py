"""
AI study tutor: proxies a chat history to OpenAI and returns one reply.

Only the most recent turns are sent, matching the cap on locally stored
guest chat history.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from openai import OpenAI, OpenAIError

from ..config import Config
from .openai_provider import chat_model, get_openai_client

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a supportive and brilliant AI Study Tutor. Your goal is to help students "
    "break down complex tasks, explain academic concepts simply, and provide encouragement. "
    "Keep responses concise, well-formatted, and encouraging."
)


def trim_history(messages: Sequence[Any], limit: int | None = None) -> list:
    """Keep the `limit` most recent messages, oldest first."""
    if limit is None:
        limit = Config.AI_CHAT_HISTORY_LIMIT
    messages = list(messages)
    return messages[max(len(messages) - limit, 0):]


def to_openai_message(message: Any) -> dict:
    """
    Map a stored chat message (dict or model) to an OpenAI chat message.

    Role "user" stays user; every other role is sent as assistant. Text is
    read from `text`, falling back to `content`.
    """
    if isinstance(message, Mapping):
        role = message.get("role")
        text = message.get("text") or message.get("content") or ""
    else:
        role = getattr(message, "role", None)
        text = getattr(message, "text", None) or getattr(message, "content", None) or ""

    role = getattr(role, "value", role)
    return {"role": "user" if role == "user" else "assistant", "content": text}


class TutorService:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: OpenAI | None = None,
        history_limit: int | None = None,
    ):
        self.client = client or (OpenAI(api_key=api_key) if api_key else get_openai_client())
        self.model = model or chat_model()
        self.history_limit = (
            history_limit if history_limit is not None else Config.AI_CHAT_HISTORY_LIMIT
        )

    def reply(self, messages: Sequence[Any], model: str | None = None) -> str:
        """
        Get the tutor's next message for a conversation.

        Args:
            messages: Chat history, oldest first (dicts or chat message models)
            model: Optional model override

        Returns:
            The assistant's reply text
        """
        if not messages:
            raise ValueError("Messages are required")

        history = [to_openai_message(m) for m in trim_history(messages, self.history_limit)]
        try:
            completion = self.client.chat.completions.create(
                model=model or self.model,
                messages=[{"role": "system", "content": SYSTEM_PROMPT}, *history],
                temperature=Config.TUTOR_TEMPERATURE,
            )
        except OpenAIError as e:
            logger.error("OpenAI API error during tutor reply: %s", e)
            raise

        content = completion.choices[0].message.content
        if not content:
            raise ValueError("OpenAI returned empty response")
        return content
