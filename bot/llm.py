from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_google_genai import ChatGoogleGenerativeAI

from bot.core.models import Turn
from bot.core.prompt import CHAT_SYSTEM_PROMPT
from config.settings import Settings, get_settings


logger = logging.getLogger("prompt2play.llm")

MAX_REPLY_CHARS = 4096
NO_TEXT_REPLY = "No response text found."
FALLBACK_REPLY = "Sorry, I am having trouble connecting to the AI right now."


def build_chat_model(
    model: Optional[str] = None,
    settings: Optional[Settings] = None,
    **kwargs: Any,
) -> ChatGoogleGenerativeAI:
    settings = settings or get_settings()
    if not settings.google_api_key:
        raise RuntimeError(
            "GEMINI_KEY not set. Please configure it in environment or .env"
        )

    params = {
        "model": model or settings.chat_model,
        "google_api_key": settings.google_api_key,
        "temperature": settings.temperature,
    }
    if settings.gemini_base_url:
        params["client_options"] = {"api_endpoint": settings.gemini_base_url}
    params.update(kwargs)
    return ChatGoogleGenerativeAI(**params)


def to_lc_messages(history: Sequence[Turn]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for turn in history or []:
        if not turn.text:
            continue
        if turn.role == "assistant":
            messages.append(AIMessage(content=turn.text))
        else:
            messages.append(HumanMessage(content=turn.text))
    return messages


def first_text(content: Any) -> str:
    """Return the first text part of a model message's content."""
    if isinstance(content, str):
        return content
    for part in content or []:
        if isinstance(part, str) and part:
            return part
        if isinstance(part, dict) and part.get("type") == "text" and part.get("text"):
            return part["text"]
    return ""


def truncate_reply(text: str, limit: int = MAX_REPLY_CHARS) -> str:
    return text if len(text) <= limit else text[:limit]


def build_chat_chain(llm: Any):
    prompt = ChatPromptTemplate.from_messages(
        [
            ("system", CHAT_SYSTEM_PROMPT),
            MessagesPlaceholder("chat_history"),
        ]
    )
    return prompt | llm


def get_ai_reply(history: Sequence[Turn], llm: Any = None) -> str:
    """Send the whole conversation to the chat model and return its reply.

    Never raises: failures are logged and turned into ``FALLBACK_REPLY``.
    """
    try:
        chain = build_chat_chain(llm if llm is not None else build_chat_model())
        result = chain.invoke({"chat_history": to_lc_messages(history)})
    except Exception as exc:
        logger.warning("Gemini API error: %s", exc)
        return FALLBACK_REPLY

    content = getattr(result, "content", result)
    text = first_text(content)
    if not text.strip():
        logger.info("Model returned no text part")
        return NO_TEXT_REPLY
    return truncate_reply(text)
