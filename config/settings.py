from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    app_env: str = os.getenv("APP_ENV", "development")

    # WhatsApp Business Cloud API
    verify_token: Optional[str] = os.getenv("VERIFY_TOKEN")
    whatsapp_token: Optional[str] = os.getenv("WHATSAPP_TOKEN")
    phone_id: Optional[str] = os.getenv("PHONE_ID")
    graph_api_url: str = os.getenv("GRAPH_API_URL", "https://graph.facebook.com")
    graph_api_version: str = os.getenv("GRAPH_API_VERSION", "v20.0")
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "30"))

    # Gemini
    google_api_key: Optional[str] = os.getenv("GEMINI_KEY")
    gemini_base_url: Optional[str] = os.getenv("GEMINI_BASE_URL")
    chat_model: str = os.getenv("CHAT_MODEL", "gemini-2.5-flash")
    game_model: str = os.getenv("GAME_MODEL", "gemini-3-pro-preview")
    temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
    game_max_output_tokens: int = int(os.getenv("GAME_MAX_OUTPUT_TOKENS", "20000"))

    # Local state
    public_base_url: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")
    memory_file: str = os.getenv("MEMORY_FILE", "memory.json")
    state_file: str = os.getenv("STATE_FILE", "user_state.json")
    games_dir: str = os.getenv("GAMES_DIR", "games")
    queue_dir: str = os.getenv("QUEUE_DIR", "queue")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
