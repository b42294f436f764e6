from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import httpx

from config.settings import Settings, get_settings


logger = logging.getLogger("prompt2play.whatsapp")

MAX_TEXT_CHARS = 4096
MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20
MAX_BUTTON_BODY = 1024
MAX_FOOTER = 60

Button = Tuple[str, str]


def build_text_payload(to: str, body: str) -> Dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "to": to,
        "type": "text",
        "text": {"body": body[:MAX_TEXT_CHARS]},
    }


def build_button_payload(
    to: str,
    body: str,
    buttons: Sequence[Button],
    footer: Optional[str] = None,
) -> Dict[str, Any]:
    """Interactive reply-button message, truncated to the platform limits."""
    interactive: Dict[str, Any] = {
        "type": "button",
        "body": {"text": body[:MAX_BUTTON_BODY]},
        "action": {
            "buttons": [
                {"type": "reply", "reply": {"id": button_id, "title": title[:MAX_BUTTON_TITLE]}}
                for button_id, title in list(buttons)[:MAX_BUTTONS]
            ]
        },
    }
    if footer:
        interactive["footer"] = {"text": footer[:MAX_FOOTER]}
    return {
        "messaging_product": "whatsapp",
        "to": to,
        "type": "interactive",
        "interactive": interactive,
    }


class WhatsAppClient:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def base_url(self) -> str:
        return f"{self.settings.graph_api_url.rstrip('/')}/{self.settings.graph_api_version}"

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.settings.http_timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.settings.whatsapp_token}"},
        )

    def send(self, payload: Dict[str, Any]) -> bool:
        endpoint = f"{self.base_url}/{self.settings.phone_id}/messages"
        try:
            with self._client() as client:
                response = client.post(endpoint, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "WhatsApp send error: status=%s body=%s",
                exc.response.status_code,
                exc.response.text[:1000],
            )
            return False
        except httpx.HTTPError as exc:
            logger.warning("WhatsApp send error: %s", exc)
            return False
        return True

    def send_text(self, to: str, body: str) -> bool:
        return self.send(build_text_payload(to, body))

    def send_buttons(
        self,
        to: str,
        body: str,
        buttons: Sequence[Button],
        footer: Optional[str] = None,
    ) -> bool:
        return self.send(build_button_payload(to, body, buttons, footer))

    def fetch_media(self, media_id: str) -> Optional[Tuple[str, bytes]]:
        """Resolve a media id and download it. Returns ``(mime_type, content)``."""
        try:
            with self._client() as client:
                meta = client.get(f"{self.base_url}/{media_id}")
                meta.raise_for_status()
                info = meta.json()
                download = client.get(info["url"])
                download.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "WhatsApp media error: status=%s body=%s",
                exc.response.status_code,
                exc.response.text[:1000],
            )
            return None
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("WhatsApp media error: %s", exc)
            return None
        return info.get("mime_type") or "image/jpeg", download.content

