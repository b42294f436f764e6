import json

from bot.core.memory import ConversationStore, UserStateStore
from bot.core.models import GameArtifact, PendingAction, Turn
from bot.core.storage import InMemoryStore, JsonFileStore


def test_appending_turns_keeps_chronological_order(conversations):
    n = 4
    for i in range(n):
        conversations.append("u1", Turn(role="user", text=f"q{i}"))
    for i in range(n):
        conversations.append("u1", Turn(role="assistant", text=f"a{i}"))

    history = conversations.history("u1")
    assert len(history) == 2 * n
    assert [t.text for t in history] == [f"q{i}" for i in range(n)] + [f"a{i}" for i in range(n)]
    assert [t.role for t in history] == ["user"] * n + ["assistant"] * n


def test_alternating_turns_preserve_order(conversations):
    for i in range(3):
        conversations.append("u1", Turn(role="user", text=f"q{i}"))
        conversations.append("u1", Turn(role="assistant", text=f"a{i}"))

    roles = [t.role for t in conversations.history("u1")]
    assert roles == ["user", "assistant"] * 3


def test_append_returns_full_history(conversations):
    conversations.append("u1", Turn(role="user", text="one"))
    history = conversations.append("u1", Turn(role="assistant", text="two"))
    assert [t.text for t in history] == ["one", "two"]


def test_touched_user_maps_to_empty_list(tmp_path):
    store = JsonFileStore(tmp_path / "memory.json")
    ConversationStore(store).touch("u1")
    assert store.load() == {"u1": []}


def test_users_are_isolated(conversations):
    conversations.append("u1", Turn(role="user", text="hello"))
    assert conversations.history("u2") == []


def test_game_artifact_is_persisted_as_game_data(tmp_path):
    path = tmp_path / "memory.json"
    conversations = ConversationStore(JsonFileStore(path))
    game = GameArtifact(id="g1", prompt="snake", url="http://x/games/g1.html", title="Snake")
    conversations.append("u1", Turn(role="assistant", text="ready", game=game))

    record = json.loads(path.read_text(encoding="utf-8"))["u1"][0]
    assert record["gameData"]["id"] == "g1"
    assert "createdAt" in record["gameData"]
    assert record["gameData"]["isMultiplayer"] is False

    assert conversations.games("u1")[0].title == "Snake"


def test_legacy_records_without_game_data_load(tmp_path):
    path = tmp_path / "memory.json"
    path.write_text(
        json.dumps({"u1": [{"role": "user", "text": "hi"}, {"role": "bogus"}]}), encoding="utf-8"
    )
    history = ConversationStore(JsonFileStore(path)).history("u1")
    assert [t.text for t in history] == ["hi"]


def test_user_state_defaults_to_none():
    states = UserStateStore(InMemoryStore())
    assert states.get("u1") is PendingAction.NONE


def test_user_state_set_and_clear(tmp_path):
    store = JsonFileStore(tmp_path / "state.json")
    states = UserStateStore(store)

    states.set("u1", PendingAction.AWAITING_GAME_DESCRIPTION)
    assert states.get("u1") is PendingAction.AWAITING_GAME_DESCRIPTION
    assert store.load() == {"u1": "awaiting_game_description"}

    states.clear("u1")
    assert states.get("u1") is PendingAction.NONE
    assert store.load() == {}


def test_unknown_state_token_is_treated_as_none():
    states = UserStateStore(InMemoryStore({"u1": "something_else"}))
    assert states.get("u1") is PendingAction.NONE
