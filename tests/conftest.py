from __future__ import annotations

from typing import List, Optional

import pytest

from bot.core.memory import ConversationStore, UserStateStore
from bot.core.models import GameArtifact, Turn
from bot.core.storage import InMemoryStore
from bot.dispatcher import WebhookDispatcher
from bot.tools.game_generator import GameGenerationError
from config.settings import Settings


class FakeMessenger:
    def __init__(self):
        self.sent = []

    def send_text(self, to, body):
        self.sent.append(("text", to, body))
        return True

    def send_buttons(self, to, body, buttons, footer=None):
        self.sent.append(("buttons", to, body, list(buttons), footer))
        return True

    def fetch_media(self, media_id):
        return "image/png", b"png-bytes"

    def texts(self) -> List[str]:
        return [item[2] for item in self.sent if item[0] == "text"]


class FakeGames:
    def __init__(self):
        self.calls = []
        self.fail = False
        self.sources = {"abc123": "<!DOCTYPE html><html></html>"}

    def generate(self, prompt, history=None, image_url=None, remix_source=None):
        self.calls.append(
            {"prompt": prompt, "history": history, "image_url": image_url, "remix_source": remix_source}
        )
        if self.fail:
            raise GameGenerationError("model returned prose")
        return GameArtifact(
            id="abc123",
            prompt=prompt,
            url="http://testserver/games/abc123.html",
            title="Space Dodge",
        )

    def load_source(self, game_id) -> Optional[str]:
        return self.sources.get(game_id)


@pytest.fixture
def settings(tmp_path):
    s = Settings()
    s.app_env = "test"
    s.verify_token = "secret-token"
    s.whatsapp_token = "wa-token"
    s.phone_id = "123456"
    s.graph_api_url = "https://graph.test"
    s.graph_api_version = "v20.0"
    s.google_api_key = None
    s.public_base_url = "http://testserver"
    s.memory_file = str(tmp_path / "memory.json")
    s.state_file = str(tmp_path / "user_state.json")
    s.games_dir = str(tmp_path / "games")
    s.queue_dir = str(tmp_path / "queue")
    return s


@pytest.fixture
def conversations():
    return ConversationStore(InMemoryStore())


@pytest.fixture
def states():
    return UserStateStore(InMemoryStore())


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def games():
    return FakeGames()


@pytest.fixture
def replies():
    return []


@pytest.fixture
def dispatcher(conversations, states, messenger, games, replies):
    def reply_fn(history: List[Turn]) -> str:
        replies.append(list(history))
        return f"echo: {history[-1].text}"

    return WebhookDispatcher(conversations, states, messenger, games, reply_fn=reply_fn)


def text_event(sender: str, body: str) -> dict:
    return _event({"from": sender, "id": "wamid.1", "type": "text", "text": {"body": body}})


def button_event(sender: str, button_id: str, title: str = "") -> dict:
    return _event(
        {
            "from": sender,
            "id": "wamid.2",
            "type": "interactive",
            "interactive": {"type": "button_reply", "button_reply": {"id": button_id, "title": title}},
        }
    )


def image_event(sender: str, media_id: str, caption: str = "") -> dict:
    return _event(
        {"from": sender, "id": "wamid.3", "type": "image", "image": {"id": media_id, "caption": caption}}
    )


def _event(message: dict) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "1", "changes": [{"field": "messages", "value": {"messages": [message]}}]}],
    }


@pytest.fixture
def events():
    class Events:
        text = staticmethod(text_event)
        button = staticmethod(button_event)
        image = staticmethod(image_event)

    return Events
