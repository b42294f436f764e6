import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from bot.core.models import Turn
from bot.llm import (
    FALLBACK_REPLY,
    NO_TEXT_REPLY,
    build_chat_model,
    first_text,
    get_ai_reply,
    to_lc_messages,
    truncate_reply,
)


HISTORY = [
    Turn(role="user", text="hi"),
    Turn(role="assistant", text="hello!"),
    Turn(role="user", text="make me a game"),
]


def recording_model(reply):
    calls = []

    def model(prompt_value):
        calls.append(prompt_value.to_messages())
        return reply

    return model, calls


def test_roles_map_to_user_and_model_messages():
    messages = to_lc_messages(HISTORY)
    assert [type(m) for m in messages] == [HumanMessage, AIMessage, HumanMessage]
    assert [m.content for m in messages] == ["hi", "hello!", "make me a game"]


def test_whole_history_is_sent_after_system_prompt():
    model, calls = recording_model(AIMessage(content="Send /start!"))

    assert get_ai_reply(HISTORY, llm=model) == "Send /start!"
    sent = calls[0]
    assert isinstance(sent[0], SystemMessage)
    assert [m.content for m in sent[1:]] == ["hi", "hello!", "make me a game"]


def test_first_text_part_is_used_for_list_content():
    model, _ = recording_model(
        AIMessage(content=[{"type": "text", "text": "first"}, {"type": "text", "text": "second"}])
    )
    assert get_ai_reply(HISTORY, llm=model) == "first"


def test_empty_response_yields_no_text_reply():
    model, _ = recording_model(AIMessage(content=""))
    assert get_ai_reply(HISTORY, llm=model) == NO_TEXT_REPLY


def test_reply_whitespace_is_preserved():
    model, _ = recording_model(AIMessage(content="  hi there \n"))
    assert get_ai_reply(HISTORY, llm=model) == "  hi there \n"


def test_whitespace_only_response_yields_no_text_reply():
    model, _ = recording_model(AIMessage(content=" \n\t"))
    assert get_ai_reply(HISTORY, llm=model) == NO_TEXT_REPLY


def test_model_errors_become_fallback_reply(caplog):
    def broken(_):
        raise RuntimeError("404 model not found")

    assert get_ai_reply(HISTORY, llm=broken) == FALLBACK_REPLY
    assert "404 model not found" in caplog.text


def test_long_reply_is_truncated_to_4096():
    model, _ = recording_model(AIMessage(content="x" * 5000))
    assert len(get_ai_reply(HISTORY, llm=model)) == 4096


@pytest.mark.parametrize("length", [0, 1, 4095, 4096])
def test_short_reply_is_unchanged(length):
    text = "y" * length
    assert truncate_reply(text) == text


def test_truncate_reply_cuts_exactly():
    assert truncate_reply("z" * 4097) == "z" * 4096


def test_first_text_skips_non_text_parts():
    assert first_text([{"type": "image_url", "image_url": "x"}, "plain"]) == "plain"
    assert first_text(None) == ""


def test_missing_api_key_raises(settings):
    settings.google_api_key = None
    with pytest.raises(RuntimeError, match="GEMINI_KEY"):
        build_chat_model(settings=settings)


def test_missing_api_key_still_returns_fallback(monkeypatch, settings):
    monkeypatch.setattr("bot.llm.get_settings", lambda: settings)
    assert get_ai_reply(HISTORY) == FALLBACK_REPLY
