from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


class DomainSourceError(RuntimeError):
    """Transport, auth or payload failure while fetching domains."""


@dataclass(frozen=True)
class KeitaroConfig:
    api_url: str
    api_key: str
    request_timeout_seconds: float = 15.0
    probe_timeout_seconds: float = 5.0


def _truncate(text: str, limit: int = 300) -> str:
    s = (text or "").strip()
    return s if len(s) <= limit else s[:limit] + "..."


def parse_active_domains(payload: Any) -> list[str]:
    """
    Keitaro answers either with a bare list of domain objects or with
    {"domains": [...]}. Only entries in state "active" are kept.
    """
    if payload is None:
        return []
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        items = payload.get("domains") or []
    else:
        raise ValueError(f"Unexpected Keitaro response type: {type(payload).__name__}")
    if not isinstance(items, list):
        raise ValueError("Unexpected Keitaro response: 'domains' is not a list")

    domains: list[str] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        if str(item.get("state") or "") != "active":
            continue
        name = str(item.get("name") or "").strip()
        if name:
            domains.append(name)
    return domains


class KeitaroDomainSource:
    def __init__(self, client: httpx.AsyncClient, config: KeitaroConfig):
        self.client = client
        self.config = config

    def _url(self, path: str) -> str:
        return f"{self.config.api_url.rstrip('/')}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        return {"Api-Key": self.config.api_key, "Content-Type": "application/json"}

    async def fetch_active_domains(self) -> list[str]:
        logger.info("Fetching active domains from Keitaro")
        try:
            resp = await self.client.get(
                self._url("/domains"),
                headers=self._headers(),
                timeout=self.config.request_timeout_seconds,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Keitaro API request failed",
                status_code=e.response.status_code,
                body=_truncate(e.response.text),
            )
            raise DomainSourceError(f"Keitaro API error: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("Keitaro API request failed", error=f"{type(e).__name__}: {e}")
            raise DomainSourceError(f"Keitaro API error: {type(e).__name__}: {e}") from e

        if not resp.content:
            logger.warning("No data received from Keitaro API")
            return []

        try:
            domains = parse_active_domains(resp.json())
        except ValueError as e:
            raise DomainSourceError(f"Keitaro API error: {e}") from e

        logger.info("Fetched active domains", count=len(domains))
        return domains

    async def test_connection(self) -> bool:
        try:
            resp = await self.client.get(
                self._url("/domains"),
                headers=self._headers(),
                timeout=self.config.probe_timeout_seconds,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Keitaro API connection test failed", error=f"{type(e).__name__}: {e}")
            return False
        logger.info("Keitaro API connection test successful")
        return True
