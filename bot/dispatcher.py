from __future__ import annotations

import base64
import logging
from typing import Any, Callable, List, Literal, Optional, Sequence

from pydantic import BaseModel

from bot.core.memory import ConversationStore, UserStateStore
from bot.core.models import GameArtifact, PendingAction, Turn
from bot.core.prompt import ASK_GAME_DESCRIPTION, MENU_BODY, MENU_FOOTER
from bot.llm import get_ai_reply
from bot.tools.game_generator import GameGenerationError, GameGenerator
from bot.tools.whatsapp import WhatsAppClient


logger = logging.getLogger("prompt2play.dispatcher")

START_COMMAND = "/start"
REMIX_COMMAND = "/remix"
CANCEL_WORD = "cancel"

MENU_BUTTONS = [("create_game", "🎮 Create Game"), ("my_games", "📂 My Games")]

GENERATING_TEXT = "⏳ Building your game, this can take a minute..."
GAME_FAILED_TEXT = "😔 Sorry, I couldn't create that game. Please try again with /start."
CANCELLED_TEXT = "👍 Cancelled. Send /start whenever you want to create a game."
NO_GAMES_TEXT = "You haven't created any games yet. Tap *Create Game* to make one!"
REMIX_USAGE_TEXT = "Usage: /remix <game id> <what to change>"
REMIX_MISSING_TEXT = "I couldn't find a game with that id."


class InboundMessage(BaseModel):
    sender: str
    kind: Literal["text", "button", "image"]
    text: str = ""
    button_id: Optional[str] = None
    media_id: Optional[str] = None


def extract_message(payload: Any) -> Optional[InboundMessage]:
    """Read ``entry[0].changes[0].value.messages[0]`` from a webhook event."""
    try:
        message = payload["entry"][0]["changes"][0]["value"]["messages"][0]
        sender = message["from"]
        kind = message.get("type")
    except (AttributeError, KeyError, IndexError, TypeError):
        return None
    if not isinstance(sender, str) or not sender:
        return None

    if kind == "text":
        text = message.get("text")
        body = text.get("body") if isinstance(text, dict) else None
        if not isinstance(body, str):
            return None
        return InboundMessage(sender=sender, kind="text", text=body)

    if kind == "interactive":
        interactive = message.get("interactive")
        reply = interactive.get("button_reply") if isinstance(interactive, dict) else None
        if not isinstance(reply, dict) or not isinstance(reply.get("id"), str) or not reply["id"]:
            return None
        title = reply.get("title")
        return InboundMessage(
            sender=sender,
            kind="button",
            button_id=reply["id"],
            text=title if isinstance(title, str) else "",
        )

    if kind == "image":
        image = message.get("image")
        if not isinstance(image, dict) or not isinstance(image.get("id"), str) or not image["id"]:
            return None
        caption = image.get("caption")
        return InboundMessage(
            sender=sender,
            kind="image",
            media_id=image["id"],
            text=caption if isinstance(caption, str) else "",
        )

    return None


def format_games(games: Sequence[GameArtifact]) -> str:
    lines = ["🕹️ Your games:"]
    for game in games[-10:]:
        lines.append(f"• {game.title or game.prompt[:40]} ({game.id})\n  {game.url}")
    return "\n".join(lines)


class WebhookDispatcher:
    def __init__(
        self,
        conversations: ConversationStore,
        states: UserStateStore,
        messenger: WhatsAppClient,
        games: GameGenerator,
        reply_fn: Callable[[List[Turn]], str] = get_ai_reply,
    ):
        self.conversations = conversations
        self.states = states
        self.messenger = messenger
        self.games = games
        self.reply_fn = reply_fn

    def handle(self, payload: Any) -> None:
        message = extract_message(payload)
        if message is None:
            logger.debug("Ignoring webhook event without a supported message")
            return

        logger.info("User (%s) %s: %.200s", message.sender, message.kind, message.text)
        if message.kind == "button":
            self.on_button(message)
        elif message.kind == "image":
            self.on_image(message)
        else:
            self.on_text(message)

    def send_menu(self, user_id: str) -> None:
        self.states.clear(user_id)
        self.messenger.send_buttons(user_id, MENU_BODY, MENU_BUTTONS, footer=MENU_FOOTER)

    def on_button(self, message: InboundMessage) -> None:
        user_id = message.sender
        if message.button_id == "create_game":
            self.states.set(user_id, PendingAction.AWAITING_GAME_DESCRIPTION)
            self.messenger.send_text(user_id, ASK_GAME_DESCRIPTION)
        elif message.button_id == "my_games":
            games = self.conversations.games(user_id)
            self.messenger.send_text(user_id, format_games(games) if games else NO_GAMES_TEXT)
        else:
            logger.info("Unknown button %r from %s", message.button_id, user_id)

    def on_text(self, message: InboundMessage) -> None:
        user_id = message.sender
        text = message.text.strip()

        if text.lower() == START_COMMAND:
            self.send_menu(user_id)
            return

        if self.states.get(user_id) is PendingAction.AWAITING_GAME_DESCRIPTION:
            if text.lower() == CANCEL_WORD:
                self.states.clear(user_id)
                self.messenger.send_text(user_id, CANCELLED_TEXT)
                return
            self.create_game(user_id, text)
            return

        if text.lower().startswith(REMIX_COMMAND):
            self.remix(user_id, text[len(REMIX_COMMAND):].strip())
            return

        self.chat(user_id, message.text)

    def on_image(self, message: InboundMessage) -> None:
        user_id = message.sender
        if self.states.get(user_id) is not PendingAction.AWAITING_GAME_DESCRIPTION:
            self.messenger.send_text(user_id, "📷 Nice picture! Send /start to turn it into a game.")
            return

        image_url = None
        media = self.messenger.fetch_media(message.media_id)
        if media:
            mime_type, content = media
            image_url = f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"
        prompt = message.text.strip() or "Make a game inspired by this picture."
        self.create_game(user_id, prompt, image_url=image_url)

    def chat(self, user_id: str, text: str) -> None:
        history = self.conversations.append(user_id, Turn(role="user", text=text))
        reply = self.reply_fn(history)
        logger.info("Gemini reply to %s: %.200s", user_id, reply)
        self.conversations.append(user_id, Turn(role="assistant", text=reply))
        self.messenger.send_text(user_id, reply)

    def create_game(
        self,
        user_id: str,
        prompt: str,
        image_url: Optional[str] = None,
        remix_source: Optional[str] = None,
    ) -> Optional[GameArtifact]:
        """Generate a game and always leave the user idle afterwards."""
        try:
            prior = self.conversations.history(user_id)
            self.conversations.append(user_id, Turn(role="user", text=prompt))
            self.messenger.send_text(user_id, GENERATING_TEXT)
            try:
                game = self.games.generate(
                    prompt, history=prior, image_url=image_url, remix_source=remix_source
                )
            except GameGenerationError as exc:
                logger.warning("Game generation for %s failed: %s", user_id, exc)
                self.messenger.send_text(user_id, GAME_FAILED_TEXT)
                return None

            title = game.title or "Your game"
            reply = f"🎮 {title} is ready!\n\nPlay here: {game.url}\n\nGame id: {game.id}"
            if game.description:
                reply = f"{reply}\n\n{game.description}"
            self.conversations.append(user_id, Turn(role="assistant", text=reply, game=game))
            self.messenger.send_text(user_id, reply)
            return game
        finally:
            self.states.clear(user_id)

    def remix(self, user_id: str, args: str) -> None:
        game_id, _, changes = args.partition(" ")
        if not game_id or not changes.strip():
            self.messenger.send_text(user_id, REMIX_USAGE_TEXT)
            return
        source = self.games.load_source(game_id)
        if source is None:
            self.messenger.send_text(user_id, REMIX_MISSING_TEXT)
            return
        self.create_game(user_id, changes.strip(), remix_source=source)
