from __future__ import annotations

import json
from dataclasses import dataclass

import httpx
import structlog

logger = structlog.get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
TELEGRAM_MAX_MESSAGE_LEN = 3900


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    chat_id: str
    timeout_seconds: float = 10.0


def split_telegram_message(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    s = (text or "").strip()
    if not s:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    while s:
        if len(s) <= max_len:
            parts.append(s)
            break
        cut = s.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        chunk = s[:cut].rstrip()
        parts.append(chunk)
        s = s[cut:].lstrip()
    return parts


def _redact(config: TelegramConfig, msg: str) -> str:
    if config.bot_token:
        return msg.replace(config.bot_token, "<redacted>")
    return msg


def _api_url(config: TelegramConfig, method: str) -> str:
    return f"{TELEGRAM_API_BASE}/bot{config.bot_token}/{method}"


async def send_telegram_message(
    client: httpx.AsyncClient, config: TelegramConfig, text: str, *, parse_mode: str | None = "HTML"
) -> tuple[bool, dict]:
    payload: dict = {"chat_id": config.chat_id, "text": text, "disable_web_page_preview": True}
    if parse_mode:
        payload["parse_mode"] = parse_mode
    try:
        resp = await client.post(_api_url(config, "sendMessage"), json=payload, timeout=config.timeout_seconds)
        data = resp.json()
        return bool(data.get("ok")), data
    except Exception as e:
        return False, {"ok": False, "error": _redact(config, f"{type(e).__name__}: {e}")}


def redact_telegram_response(data: dict) -> str:
    safe = {"ok": data.get("ok")}
    if isinstance(data.get("result"), dict):
        safe["result"] = {"message_id": data["result"].get("message_id")}
    if data.get("description"):
        safe["description"] = data.get("description")
    if data.get("error"):
        safe["error"] = data.get("error")
    return json.dumps(safe, ensure_ascii=False)


class TelegramNotifier:
    """Notification sink posting pre-formatted messages to one Telegram chat."""

    def __init__(self, client: httpx.AsyncClient, config: TelegramConfig):
        self.client = client
        self.config = config

    async def send_message(self, text: str, parse_mode: str | None = "HTML") -> bool:
        """
        Send ``text`` as-is, split into Telegram-sized chunks when needed.

        Never raises: failures are logged and reported as False since there is
        no fallback channel.
        """
        ok_all = True
        for part in split_telegram_message(text):
            ok, resp = await send_telegram_message(self.client, self.config, part, parse_mode=parse_mode)
            if not ok:
                logger.error("Failed to send Telegram message", telegram=redact_telegram_response(resp))
            ok_all = ok_all and ok
        if ok_all:
            logger.info("Telegram message sent")
        return ok_all

    async def test_connection(self) -> bool:
        try:
            resp = await self.client.get(_api_url(self.config, "getMe"), timeout=self.config.timeout_seconds)
            data = resp.json()
        except Exception as e:
            logger.error("Telegram connection test failed", error=_redact(self.config, f"{type(e).__name__}: {e}"))
            return False

        if not data.get("ok"):
            logger.error("Telegram connection test failed", telegram=redact_telegram_response(data))
            return False
        username = (data.get("result") or {}).get("username")
        logger.info("Telegram bot connected", username=username)
        return True
