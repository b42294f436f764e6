from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, PlainTextResponse
import logging

from bot.core.memory import ConversationStore, UserStateStore
from bot.core.queue import EventQueue, QueueWorker
from bot.core.storage import JsonFileStore
from bot.dispatcher import WebhookDispatcher
from bot.tools.game_generator import GameGenerator, game_file
from bot.tools.whatsapp import WhatsAppClient
from config.settings import Settings, get_settings


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("prompt2play")


def build_dispatcher(settings: Settings) -> WebhookDispatcher:
    return WebhookDispatcher(
        conversations=ConversationStore(JsonFileStore(settings.memory_file)),
        states=UserStateStore(JsonFileStore(settings.state_file)),
        messenger=WhatsAppClient(settings),
        games=GameGenerator(settings=settings),
    )


def create_app(
    settings: Optional[Settings] = None,
    dispatcher: Optional[WebhookDispatcher] = None,
    queue: Optional[EventQueue] = None,
) -> FastAPI:
    settings = settings or get_settings()
    dispatcher = dispatcher or build_dispatcher(settings)
    queue = queue or EventQueue(settings.queue_dir)
    worker = QueueWorker(queue, dispatcher.handle)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        leftover = queue.counts()["pending"]
        startup_drain = None
        if leftover:
            logger.info("Draining %s queued events left from a previous run", leftover)
            startup_drain = asyncio.create_task(run_in_threadpool(worker.drain))
        yield
        if startup_drain is not None:
            await startup_drain

    app = FastAPI(title="Prompt2Play WhatsApp Bot", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.queue = queue
    app.state.worker = worker

    if settings.app_env.lower() in {"dev", "development", "local"}:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/", response_class=PlainTextResponse)
    def home() -> str:
        return "WhatsApp Gemini Bot is running!"

    @app.get("/webhook")
    def verify_webhook(
        mode: Optional[str] = Query(None, alias="hub.mode"),
        challenge: Optional[str] = Query(None, alias="hub.challenge"),
        token: Optional[str] = Query(None, alias="hub.verify_token"),
    ) -> Response:
        if mode == "subscribe" and settings.verify_token and token == settings.verify_token:
            logger.info("WEBHOOK VERIFIED")
            return PlainTextResponse(challenge or "", status_code=200)
        logger.warning("Webhook verification rejected: mode=%s", mode)
        return Response(status_code=403)

    @app.post("/webhook")
    async def receive_webhook(request: Request, background_tasks: BackgroundTasks) -> Response:
        try:
            payload = await request.json()
        except ValueError:
            logger.warning("Webhook body is not valid JSON; ignoring")
            return PlainTextResponse("EVENT_RECEIVED")

        try:
            event_id = queue.enqueue(payload)
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to queue webhook event")
            return PlainTextResponse("EVENT_RECEIVED")

        logger.info("Webhook event queued: %s", event_id)
        background_tasks.add_task(worker.drain)
        return PlainTextResponse("EVENT_RECEIVED")

    @app.get("/games/{game_id}.html")
    def serve_game(game_id: str) -> FileResponse:
        path = game_file(settings.games_dir, game_id)
        if path is None or not path.is_file():
            raise HTTPException(status_code=404, detail="Game not found")
        return FileResponse(path, media_type="text/html")

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", **queue.counts()}

    return app


app = create_app()
