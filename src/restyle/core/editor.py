"""Clothing edit orchestration against the multimodal AI gateway.

This module provides :class:`ClothingEditor`, the single point of control
for every gateway-backed feature: clothing edits, clothing detection,
virtual try-on and outfit suggestions.

Edit Flow
---------
1. Sanitize the raw prompt (:mod:`restyle.core.prompt_safety`).
2. Wrap the cleaned prompt in the fixed edit instruction
   (:mod:`restyle.core.instructions`).
3. Send instruction + source image to the gateway, asking for image output.
4. Map the HTTP status: 429 and 402 have dedicated outcomes, anything
   else non-2xx is an :class:`UnknownFailure`.
5. Inspect the first choice: content filter, refusal, then the image
   extractor chain (:mod:`restyle.core.responses`).

Failures never escape :meth:`ClothingEditor.request_edit`; they come back
as :data:`~restyle.core.outcomes.EditOutcome` variants.  Nothing is retried.

Usage
-----
::

    editor = ClothingEditor(GatewayClient(config), config)
    outcome = await editor.request_edit(data_uri, "a blue denim jacket")
    if isinstance(outcome, EditSuccess):
        save(outcome.edited_image_uri)
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping

import httpx

from restyle.core import instructions, responses
from restyle.core.config import RestyleConfig
from restyle.core.gateway import (
    GatewayClient,
    GatewayNotConfiguredError,
    GatewayReply,
    image_part,
    text_part,
)
from restyle.core.outcomes import (
    BlockedByFilter,
    EditOutcome,
    EditSuccess,
    FailureOutcome,
    GatewayError,
    PaymentRequired,
    RateLimited,
    Refused,
    UnknownFailure,
)
from restyle.core.prompt_safety import SanitizationResult, sanitize

logger = logging.getLogger(__name__)

IMAGE_MODALITIES = ["image", "text"]

_CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\n?")


def classify_http_failure(reply: GatewayReply) -> FailureOutcome:
    """Map a non-2xx gateway reply to its failure outcome."""
    if reply.status_code == 429:
        return RateLimited()
    if reply.status_code == 402:
        return PaymentRequired()
    return UnknownFailure(f"AI gateway returned {reply.status_code}: {reply.text}")


def interpret_image_reply(
    reply: GatewayReply,
    sanitization: SanitizationResult | None = None,
) -> EditOutcome:
    """Turn a gateway reply to an image request into an :data:`EditOutcome`.

    Args:
        reply: The gateway exchange.
        sanitization: Prompt sanitization to report on success, if any.

    Returns:
        The outcome variant for *reply*.
    """
    if not reply.ok:
        logger.warning(f"Gateway error response ({reply.status_code}): {reply.text}")
        return classify_http_failure(reply)

    choice = responses.first_choice(reply.payload)
    message = responses.choice_message(choice)

    if responses.is_content_filtered(choice):
        logger.info("Content filter triggered")
        return BlockedByFilter()

    if responses.is_refusal(message):
        logger.info(f"Gateway refused the request: {message.get('refusal') or message.get('content')}")
        return Refused()

    image = responses.extract_image(message)
    if not image:
        logger.error(f"No image found in gateway response: {reply.text}")
        return UnknownFailure("no image returned")

    if sanitization is None:
        return EditSuccess(edited_image_uri=image)
    return EditSuccess(
        edited_image_uri=image,
        sanitized=sanitization.was_sanitized,
        removed_terms=sanitization.removed_terms,
        cleaned_prompt=sanitization.cleaned_prompt,
    )


def parse_suggestions(text: str) -> list:
    """Parse the stylist reply, tolerating Markdown code fences.

    Raises:
        ValueError: If the text is not a JSON array.
    """
    cleaned = _CODE_FENCE_PATTERN.sub("", text).strip()
    parsed = json.loads(cleaned)
    if not isinstance(parsed, list):
        raise ValueError("Expected a JSON array of outfits")
    return parsed


class ClothingEditor:
    """Runs gateway-backed clothing operations.

    Attributes:
        _gateway (GatewayClient): Client used for every gateway call.
        _config (RestyleConfig): Supplies model identifiers.
    """

    def __init__(self, gateway: GatewayClient, config: RestyleConfig) -> None:
        self._gateway = gateway
        self._config = config

    async def _send(
        self,
        model: str,
        content: str | list[dict],
        modalities: list[str] | None = None,
    ) -> GatewayReply | UnknownFailure:
        """Send a request, converting transport failures to :class:`UnknownFailure`."""
        try:
            return await self._gateway.complete(model, content, modalities=modalities)
        except GatewayNotConfiguredError as e:
            logger.error(str(e))
            return UnknownFailure(str(e))
        except httpx.RequestError as e:
            logger.error(f"Gateway request failed: {e!r}", exc_info=True)
            return UnknownFailure(f"Could not reach the AI gateway: {e!r}")

    async def request_edit(self, source_image: str, raw_prompt: str) -> EditOutcome:
        """Regenerate *source_image* wearing the clothing described by *raw_prompt*.

        Args:
            source_image: Image URL or ``data:`` URI.
            raw_prompt: Untrusted clothing description.

        Returns:
            Exactly one :data:`EditOutcome` variant.  Never raises for
            gateway failures.
        """
        sanitization = sanitize(raw_prompt)
        instruction = instructions.build_edit_instruction(sanitization.cleaned_prompt)
        logger.info(f"Editing clothing with prompt: {raw_prompt!r}")

        reply = await self._send(
            self._config.edit_model,
            [text_part(instruction), image_part(source_image)],
            modalities=IMAGE_MODALITIES,
        )
        if isinstance(reply, UnknownFailure):
            return reply
        return interpret_image_reply(reply, sanitization)

    async def virtual_try_on(
        self,
        clothing_image: str,
        body_type: str | None = None,
        pose: str | None = None,
    ) -> EditOutcome:
        """Render *clothing_image* worn by a model of the given body type and pose."""
        instruction = instructions.build_try_on_instruction(body_type, pose)
        reply = await self._send(
            self._config.edit_model,
            [text_part(instruction), image_part(clothing_image)],
            modalities=IMAGE_MODALITIES,
        )
        if isinstance(reply, UnknownFailure):
            return reply
        return interpret_image_reply(reply)

    async def analyze_clothing(self, image: str) -> list[str]:
        """List the clothing items visible in *image*.

        Returns:
            Trimmed, non-empty item descriptions in the order given by the model.

        Raises:
            GatewayError: If the gateway call fails.
        """
        reply = await self._send(
            self._config.analysis_model,
            [text_part(instructions.ANALYSIS_INSTRUCTION), image_part(image)],
        )
        if isinstance(reply, UnknownFailure):
            raise GatewayError(reply)
        if not reply.ok:
            logger.warning(f"Clothing analysis failed ({reply.status_code}): {reply.text}")
            raise GatewayError(classify_http_failure(reply))

        text = responses.message_text(reply.payload)
        clothing = [item.strip() for item in text.split(",") if item.strip()]
        logger.info(f"Detected clothing: {clothing}")
        return clothing

    async def suggest_outfits(
        self,
        records: Iterable[Mapping],
        *,
        season: str | None = None,
        occasion: str | None = None,
        style: str | None = None,
    ) -> list:
        """Ask the stylist model for outfit combinations drawn from *records*.

        Raises:
            GatewayError: If the gateway call fails or the reply is not a
                JSON array.
        """
        prompt = instructions.build_suggestion_instruction(
            records, season=season, occasion=occasion, style=style
        )
        reply = await self._send(self._config.analysis_model, prompt)
        if isinstance(reply, UnknownFailure):
            raise GatewayError(reply)
        if not reply.ok:
            raise GatewayError(classify_http_failure(reply))

        text = responses.message_text(reply.payload)
        if not text:
            raise GatewayError(UnknownFailure("Failed to generate suggestions. Please try again."))
        try:
            return parse_suggestions(text)
        except ValueError as e:
            logger.error(f"Failed to parse outfit suggestions: {e}")
            raise GatewayError(
                UnknownFailure("Failed to parse AI suggestions. Please try again.")
            ) from e
