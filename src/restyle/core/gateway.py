"""HTTP client for the multimodal AI gateway.

The gateway speaks an OpenAI-style chat-completions dialect: one POST with
a list of messages, each carrying text and ``image_url`` content parts,
plus an optional ``modalities`` hint when an image is expected back.

:class:`GatewayClient` owns a single :class:`httpx.AsyncClient` for the
lifetime of the application and returns a :class:`GatewayReply` for every
HTTP exchange, successful or not.  Interpreting status codes and response
shapes is the caller's job (see :mod:`restyle.core.editor`).

Transport failures (connection refused, DNS, timeout) surface as
:class:`httpx.RequestError`, and a missing credential as
:class:`GatewayNotConfiguredError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from restyle.core.config import RestyleConfig

logger = logging.getLogger(__name__)


class GatewayNotConfiguredError(RuntimeError):
    """Raised when no gateway credential is configured."""


@dataclass(frozen=True)
class GatewayReply:
    """One HTTP exchange with the gateway.

    Attributes:
        status_code: HTTP status returned by the gateway.
        text: Raw response body.
        payload: Parsed JSON body, or ``None`` when the body is not JSON.
    """

    status_code: int
    text: str
    payload: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def text_part(text: str) -> dict:
    return {"type": "text", "text": text}


def image_part(image: str) -> dict:
    return {"type": "image_url", "image_url": {"url": image}}


class GatewayClient:
    """Async chat-completions client bound to a :class:`RestyleConfig`."""

    def __init__(
        self,
        config: RestyleConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the client.

        Args:
            config: Application configuration (URL, credential, timeout).
            transport: Optional httpx transport, used by tests to stand in
                for the real gateway.
        """
        self._config = config
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.gateway_timeout),
            transport=transport,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._config.gateway_api_key)

    async def complete(
        self,
        model: str,
        content: str | list[dict],
        *,
        modalities: list[str] | None = None,
    ) -> GatewayReply:
        """Send one user message to the gateway.

        Args:
            model: Gateway model identifier.
            content: Plain text, or a list of content parts built with
                :func:`text_part` and :func:`image_part`.
            modalities: Output modality hint, e.g. ``["image", "text"]``.

        Returns:
            The :class:`GatewayReply` for the exchange.

        Raises:
            GatewayNotConfiguredError: If no credential is configured.
            httpx.RequestError: On transport failure or timeout.
        """
        if not self.is_configured:
            raise GatewayNotConfiguredError("Gateway API key is not configured")

        body: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": content}],
        }
        if modalities:
            body["modalities"] = modalities

        logger.info(f"Sending gateway request (model={model})")
        response = await self._client.post(
            self._config.gateway_url,
            headers={"Authorization": f"Bearer {self._config.gateway_api_key}"},
            json=body,
        )
        logger.info(f"Gateway response status: {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            payload = None

        return GatewayReply(
            status_code=response.status_code,
            text=response.text,
            payload=payload,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()
