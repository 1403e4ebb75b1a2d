"""
quorum.services.push_gateway — Mobile/desktop push hand-off
============================================================

The orchestrator hands every new notification to a :class:`PushGateway`
after it has been stored and broadcast.  Delivery here is best-effort:
results are counted and logged, never retried synchronously.

* :class:`NullPushGateway` — used when ``push_gateway_url`` is unset.
* :class:`WebhookPushGateway` — POSTs ``{user_id, title, body, data}`` to an
  external push relay, which fans out to the user's device tokens.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from quorum.config import QuorumConfig
from quorum.errors import TransientDeliveryError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PushMessage:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        if not self.title or not self.body:
            raise ValidationError("Push title and body are required")


@dataclass(frozen=True, slots=True)
class PushResult:
    success: int = 0
    failed: int = 0
    total: int = 0


class PushGateway(Protocol):
    async def send(self, user_id: int, message: PushMessage) -> PushResult: ...

    async def aclose(self) -> None: ...


class NullPushGateway:
    """Accepts everything, delivers nothing."""

    async def send(self, user_id: int, message: PushMessage) -> PushResult:
        message.validate()
        logger.debug("Push skipped for user %s (no gateway): %s", user_id, message.title)
        return PushResult()

    async def aclose(self) -> None:
        return None


class WebhookPushGateway:
    """Forwards pushes to an HTTP relay.

    The relay is expected to answer ``200`` with a JSON body of the form
    ``{"success": n, "failed": n, "total": n}``; any other response is a
    :class:`TransientDeliveryError`.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=1),
        )

    async def send(self, user_id: int, message: PushMessage) -> PushResult:
        message.validate()
        payload = {
            "user_id": str(user_id),
            "title": message.title,
            "body": message.body,
            "data": message.data,
        }
        try:
            resp = await self._client.post(self.url, json=payload)
        except httpx.HTTPError as exc:
            raise TransientDeliveryError(f"Push relay unreachable: {exc}") from exc

        if resp.status_code != 200:
            raise TransientDeliveryError(
                f"Push relay answered {resp.status_code} for user {user_id}"
            )

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        result = PushResult(
            success=int(body.get("success", 0)),
            failed=int(body.get("failed", 0)),
            total=int(body.get("total", 0)),
        )
        if result.failed:
            logger.warning(
                "Push to user %s: %d/%d device(s) failed",
                user_id, result.failed, result.total,
            )
        return result

    async def aclose(self) -> None:
        await self._client.aclose()


def build_push_gateway(cfg: QuorumConfig) -> PushGateway:
    """Pick the gateway implementation for *cfg*."""
    if cfg.push_gateway_url:
        logger.info("Push gateway → %s", cfg.push_gateway_url)
        return WebhookPushGateway(cfg.push_gateway_url, timeout=cfg.push_timeout_seconds)
    return NullPushGateway()
