"""Pydantic request and response models for the Restyle API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation, serialisation, and OpenAPI
documentation generation.

Models
------
EditRequest
    Payload for ``POST /api/edit``.
AnalyzeRequest
    Payload for ``POST /api/analyze``.
TryOnRequest
    Payload for ``POST /api/try-on``.
SuggestionRequest
    Payload for ``POST /api/suggestions``.
SanitizeRequest
    Payload for ``POST /api/prompt/sanitize``.
SaveImageRequest
    Payload for ``POST /api/gallery``.
UpdateImageRequest
    Payload for ``PATCH /api/gallery/{id}``.
FavoriteRequest
    Payload for ``POST /api/gallery/favorite``.
ShareRequest
    Payload for ``POST /api/share``.
CollectionRequest, UpdateCollectionRequest, CollectionImagesRequest
    Payloads for the ``/api/collections`` routes.
SavedPromptRequest, UpdateSavedPromptRequest
    Payloads for the ``/api/prompts`` routes.
EditResponse
    Body returned by ``/api/edit`` and ``/api/try-on`` for every outcome.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from restyle.core.outcomes import EditOutcome, EditSuccess


class EditRequest(BaseModel):
    """Request body for ``POST /api/edit``.

    Attributes:
        image: Source image as a ``data:image/...`` URI or http(s) URL.
        prompt: Free-text description of the new clothing.
    """

    image: str = Field(..., description="Source image (data URI or URL).")
    prompt: str = Field(..., description="Description of the new clothing.")


class AnalyzeRequest(BaseModel):
    image: str = Field(..., description="Image to analyse (data URI or URL).")


class TryOnRequest(BaseModel):
    """Request body for ``POST /api/try-on``."""

    clothing_image: str = Field(..., description="Clothing item image (data URI or URL).")
    body_type: str | None = Field(
        default=None,
        description="athletic, slim, average, plus or petite (default average).",
    )
    pose: str | None = Field(
        default=None,
        description="standing, casual, fashion, sitting or walking (default standing).",
    )


class SuggestionRequest(BaseModel):
    season: str | None = None
    occasion: str | None = None
    style_preference: str | None = None


class SanitizeRequest(BaseModel):
    prompt: str = ""


class SaveImageRequest(BaseModel):
    """Request body for ``POST /api/gallery``.

    Attributes:
        original_image: Uploaded image as a base64 ``data:`` URI.
        edited_image: Optional edited result, a base64 ``data:`` URI or a URL.
        filename: Display filename.
        tags: Initial tags.
        description: Optional description.
    """

    original_image: str = Field(..., description="Uploaded image as a data URI.")
    edited_image: str | None = Field(
        default=None,
        description="Edited image as a data URI or an http(s) URL returned by the gateway.",
    )
    filename: str = Field(..., min_length=1, description="Display filename.")
    tags: list[str] = Field(default_factory=list)
    description: str | None = None


class UpdateImageRequest(BaseModel):
    """Request body for ``PATCH /api/gallery/{id}``.

    Fields left as ``None`` are not changed.
    """

    tags: list[str] | None = None
    description: str | None = None


class FavoriteRequest(BaseModel):
    """Request body for ``POST /api/gallery/favorite``.

    Attributes:
        image_id: UUID of the gallery image to update.
        is_favorite: ``True`` to mark as favorite, ``False`` to unmark.
    """

    image_id: str = Field(..., description="UUID of the gallery image to update.")
    is_favorite: bool = Field(..., description="True to mark as favorite, False to unmark.")


class ShareRequest(BaseModel):
    image_id: str = Field(..., description="UUID of the gallery image to share.")
    expires_in_days: int | None = Field(
        default=None,
        ge=1,
        le=365,
        description="Link lifetime in days; omit for a link that never expires.",
    )


class CollectionRequest(BaseModel):
    """Request body for ``POST /api/collections``."""

    name: str = Field(..., min_length=1, description="Collection name.")
    description: str | None = None


class UpdateCollectionRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None


class CollectionImagesRequest(BaseModel):
    image_ids: list[str] = Field(..., min_length=1, description="Gallery images to add.")


class SavedPromptRequest(BaseModel):
    """Request body for ``POST /api/prompts``.

    Attributes:
        name: Short label shown in the prompt library.
        prompt: The clothing description to reuse.
        category: Optional grouping, e.g. ``"formal"``.
    """

    name: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    category: str | None = None


class UpdateSavedPromptRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    prompt: str | None = Field(default=None, min_length=1)
    category: str | None = None


class EditResponse(BaseModel):
    """Body returned for every edit or try-on outcome.

    Gateway failures are reported here with ``success=False`` rather than
    as HTTP errors so the client can show ``message`` as-is.
    """

    success: bool
    kind: str
    message: str
    edited_image: str | None = None
    sanitized: bool | None = None
    removed_terms: list[str] | None = None
    cleaned_prompt: str | None = None

    @classmethod
    def from_outcome(cls, outcome: EditOutcome) -> EditResponse:
        if isinstance(outcome, EditSuccess):
            return cls(
                success=True,
                kind=outcome.kind,
                message=outcome.message,
                edited_image=outcome.edited_image_uri,
                sanitized=outcome.sanitized,
                removed_terms=list(outcome.removed_terms) if outcome.sanitized else None,
                cleaned_prompt=outcome.cleaned_prompt if outcome.sanitized else None,
            )
        return cls(success=False, kind=outcome.kind, message=outcome.message)
