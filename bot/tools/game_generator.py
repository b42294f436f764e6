from __future__ import annotations

import json
import logging
import re
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from bot.core.models import GameArtifact, Turn
from bot.core.prompt import GAME_REMIX_NOTE, GAME_SYSTEM_PROMPT
from bot.llm import build_chat_model, first_text, to_lc_messages
from config.settings import Settings, get_settings


logger = logging.getLogger("prompt2play.games")

GAME_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
HISTORY_TURNS = 6

_MARKDOWN_FENCE_RE = re.compile(r"```([A-Za-z0-9_-]*)[ \t]*\n?(.*)```", re.S)
_QUOTE_FENCE_RE = re.compile(r"'''([A-Za-z0-9_-]*)[ \t]*\n?(.*)'''", re.S)
_HTML_DOC_RE = re.compile(r"\s*(<!doctype\s+html|<html[\s>])", re.I)


class GameGenerationError(RuntimeError):
    """The model call failed or produced nothing usable as a game."""


class GameExtraction(BaseModel):
    raw: str
    method: str = Field(..., description="markdown_fence | quote_fence | brace_scan | raw")
    code: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    is_multiplayer: bool = False

    @property
    def structured(self) -> bool:
        return self.code is not None


def _strip_code_fences(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped[3:]
        for lang in ("html", "json"):
            if stripped.lower().startswith(lang):
                stripped = stripped[len(lang):].lstrip()
                break
        stripped = stripped.rstrip()
        if stripped.endswith("```"):
            stripped = stripped[:-3]
    return stripped.strip()


def _extract_json_segment(text: str, start: int = 0) -> Optional[str]:
    start = text.find("{", start)
    if start == -1:
        return None
    stack = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            stack += 1
        elif ch == "}":
            stack -= 1
            if stack == 0:
                return text[start: idx + 1]
    return None


def _load_envelope(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text, strict=False)
    except json.JSONDecodeError:
        return None
    if isinstance(data, dict) and isinstance(data.get("code"), str):
        return data
    return None


def _scan_envelope(text: str) -> Optional[Dict[str, Any]]:
    pos = text.find("{")
    while pos != -1:
        segment = _extract_json_segment(text, pos)
        if segment is None:
            return None
        data = _load_envelope(segment)
        if data is not None:
            return data
        pos = text.find("{", pos + 1)
    return None


def _from_fence(raw: str, match: "re.Match[str]", method: str) -> Optional[GameExtraction]:
    lang, body = match.group(1).lower(), match.group(2).strip()
    data = _load_envelope(body) or _scan_envelope(body)
    if data is not None:
        return _structured(raw, data, method)
    if lang == "html" or _HTML_DOC_RE.match(body):
        return GameExtraction(raw=raw, method=method, code=body)
    return None


def _structured(raw: str, data: Dict[str, Any], method: str) -> GameExtraction:
    return GameExtraction(
        raw=raw,
        method=method,
        code=data["code"],
        title=data.get("title") if isinstance(data.get("title"), str) else None,
        description=data.get("description") if isinstance(data.get("description"), str) else None,
        is_multiplayer=bool(data.get("isMultiplayer", False)),
    )


def extract_game_payload(raw: str) -> GameExtraction:
    """Pull the game envelope out of a model response.

    Tried in order: a Markdown fence, a triple single-quote fence, then a
    string-aware brace scan when both ``"code"`` and ``"title"`` occur. If none
    match, only ``raw`` is set and ``method`` is ``"raw"``.
    """
    raw = raw or ""

    match = _MARKDOWN_FENCE_RE.search(raw)
    if match:
        result = _from_fence(raw, match, "markdown_fence")
        if result:
            return result

    match = _QUOTE_FENCE_RE.search(raw)
    if match:
        result = _from_fence(raw, match, "quote_fence")
        if result:
            return result

    if '"code"' in raw and '"title"' in raw:
        data = _scan_envelope(raw)
        if data is not None:
            return _structured(raw, data, "brace_scan")

    return GameExtraction(raw=raw, method="raw")


def game_url(base_url: str, game_id: str) -> str:
    return f"{base_url.rstrip('/')}/games/{game_id}.html"


def game_file(games_dir: str | Path, game_id: str) -> Optional[Path]:
    """Location of a stored game, or None when the id is not a plain token."""
    if not GAME_ID_RE.match(game_id or ""):
        return None
    return Path(games_dir) / f"{game_id}.html"


class GameGenerator:
    def __init__(
        self,
        games_dir: Optional[str] = None,
        public_base_url: Optional[str] = None,
        llm: Any = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.games_dir = Path(games_dir or self.settings.games_dir)
        self.public_base_url = public_base_url or self.settings.public_base_url
        self._llm = llm

    @property
    def llm(self):
        if self._llm is None:
            self._llm = build_chat_model(
                model=self.settings.game_model,
                settings=self.settings,
                max_output_tokens=self.settings.game_max_output_tokens,
            )
        return self._llm

    def build_messages(
        self,
        prompt: str,
        history: Optional[Sequence[Turn]] = None,
        image_url: Optional[str] = None,
        remix_source: Optional[str] = None,
    ) -> List[BaseMessage]:
        messages: List[BaseMessage] = [SystemMessage(content=GAME_SYSTEM_PROMPT)]
        messages.extend(to_lc_messages(list(history or [])[-HISTORY_TURNS:]))

        text = f'Create a complete HTML5 game based on this description: "{prompt}"'
        if remix_source:
            text = f"{GAME_REMIX_NOTE}\n\nREQUEST: {prompt}\n\nEXISTING GAME:\n{remix_source}"

        if image_url:
            content: Any = [
                {"type": "text", "text": text},
                {"type": "image_url", "image_url": image_url},
            ]
        else:
            content = text
        messages.append(HumanMessage(content=content))
        return messages

    def generate(
        self,
        prompt: str,
        history: Optional[Sequence[Turn]] = None,
        image_url: Optional[str] = None,
        remix_source: Optional[str] = None,
    ) -> GameArtifact:
        messages = self.build_messages(prompt, history, image_url, remix_source)
        try:
            response = self.llm.invoke(messages)
        except Exception as exc:
            logger.exception("Gemini game generation failed")
            raise GameGenerationError("Failed to generate game. Please try again.") from exc

        raw = first_text(getattr(response, "content", response))
        extraction = extract_game_payload(raw)
        code = extraction.code
        if code is None:
            candidate = _strip_code_fences(raw)
            if not _HTML_DOC_RE.match(candidate):
                logger.warning(
                    "Model output had no game document (len=%s): %.300s", len(raw), raw
                )
                raise GameGenerationError("The model did not return a playable game.")
            code = candidate
        logger.info("Extracted game via %s (%s chars)", extraction.method, len(code))

        game_id = uuid.uuid4().hex
        self.save_source(game_id, code)
        return GameArtifact(
            id=game_id,
            prompt=prompt,
            url=game_url(self.public_base_url, game_id),
            title=extraction.title,
            description=extraction.description,
            is_multiplayer=extraction.is_multiplayer,
        )

    def _path_for(self, game_id: str) -> Path:
        path = game_file(self.games_dir, game_id)
        if path is None:
            raise ValueError(f"Invalid game id: {game_id!r}")
        return path

    def save_source(self, game_id: str, code: str) -> Path:
        path = self._path_for(game_id)
        try:
            self.games_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(code, encoding="utf-8")
        except OSError as exc:
            logger.exception("Failed to write game %s", game_id)
            raise GameGenerationError("Failed to save the generated game.") from exc
        return path

    def load_source(self, game_id: str) -> Optional[str]:
        try:
            path = self._path_for(game_id)
        except ValueError:
            return None
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")
