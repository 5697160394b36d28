"""Restyle Studio — FastAPI Application.

This module is the single entry point for the web service.  It defines the
FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Gateway calls** go through :class:`~restyle.core.editor.ClothingEditor`,
  created at startup together with its shared HTTP client.
- **Persistence** is a :class:`~restyle.api.gallery_store.GalleryStore`:
  JSON record files plus an image directory, no database required.
- **Image blobs** are served by FastAPI's ``StaticFiles`` at ``/media``.

Edit and try-on outcomes are always returned with HTTP 200 and an
``EditResponse`` body; rate limits, exhausted credits, safety blocks and
refusals are results the user acts on, not transport errors.

Endpoints
---------
========  ==================================================  ====================================
Method    Path                                                Purpose
========  ==================================================  ====================================
GET       ``/api/health``                                     Service status and version
POST      ``/api/analyze``                                    Detect clothing items
POST      ``/api/edit``                                       Edit clothing in an image
POST      ``/api/try-on``                                     Virtual try-on
POST      ``/api/suggestions``                                Outfit suggestions from the gallery
POST      ``/api/prompt/sanitize``                            Preview prompt sanitization
GET       ``/api/gallery``                                    Filtered, sorted, paginated gallery
POST      ``/api/gallery``                                    Save an uploaded/edited image
GET       ``/api/gallery/tags``                               Distinct tags
GET       ``/api/gallery/{id}``                               Single gallery record
PATCH     ``/api/gallery/{id}``                               Update tags / description
POST      ``/api/gallery/favorite``                           Set favorite status
DELETE    ``/api/gallery/{id}``                               Delete image blob and record
GET       ``/api/collections``                                Collections with image counts
POST      ``/api/collections``                                Create a collection
GET       ``/api/collections/{id}``                           Collection with its images
PATCH     ``/api/collections/{id}``                           Rename / re-describe a collection
DELETE    ``/api/collections/{id}``                           Delete a collection
POST      ``/api/collections/{id}/images``                    Add images to a collection
DELETE    ``/api/collections/{id}/images/{image_id}``         Remove one image
GET       ``/api/prompts``                                    Saved prompts, most used first
POST      ``/api/prompts``                                    Save a prompt
PATCH     ``/api/prompts/{id}``                               Update a saved prompt
DELETE    ``/api/prompts/{id}``                               Delete a saved prompt
POST      ``/api/prompts/{id}/use``                           Count a use and return the prompt
POST      ``/api/share``                                      Create a share link
GET       ``/api/share/{token}``                              Resolve a share link
GET       ``/api/stats``                                      Usage statistics
========  ==================================================  ====================================

Usage
-----
CLI (installed entry point)::

    restyle

Direct invocation::

    python -m restyle.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from restyle import __version__
from restyle.api import gallery_store
from restyle.api.gallery_store import GalleryStore, StorageError
from restyle.api.models import (
    AnalyzeRequest,
    CollectionImagesRequest,
    CollectionRequest,
    EditRequest,
    EditResponse,
    FavoriteRequest,
    SanitizeRequest,
    SavedPromptRequest,
    SaveImageRequest,
    ShareRequest,
    SuggestionRequest,
    TryOnRequest,
    UpdateCollectionRequest,
    UpdateImageRequest,
    UpdateSavedPromptRequest,
)
from restyle.api.validation import (
    ValidationError,
    decode_image_data_uri,
    validate_image_reference,
    validate_prompt,
)
from restyle.core.config import config
from restyle.core.editor import ClothingEditor
from restyle.core.gateway import GatewayClient
from restyle.core.outcomes import EditSuccess, GatewayError, PaymentRequired, RateLimited
from restyle.core.prompt_safety import sanitize

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifecycle: gateway client and store setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Creates the :class:`GalleryStore` and the :class:`ClothingEditor`
        (with its shared :class:`GatewayClient`) and stores them on
        ``app.state``.

    On shutdown:
        Closes the gateway HTTP client.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    gateway = GatewayClient(config)
    app.state.gateway = gateway
    app.state.store = GalleryStore(config.data_dir, config.media_dir)
    app.state.editor = ClothingEditor(gateway, config)
    if not gateway.is_configured:
        logger.warning("RESTYLE_GATEWAY_API_KEY is not set; gateway calls will fail.")
    logger.info("Restyle services initialised.")

    yield

    await gateway.aclose()
    logger.info("Gateway client closed on shutdown.")


app = FastAPI(
    title="Restyle Studio",
    description="AI clothing editor API: edit, analyse, try on and organise outfit photos.",
    version=__version__,
    lifespan=lifespan,
)

# In production, restrict ``allow_origins`` to the actual deployment domain.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/media", StaticFiles(directory=str(config.media_dir)), name="media")


# ---------------------------------------------------------------------------
# Helpers.
# ---------------------------------------------------------------------------


def _store() -> GalleryStore:
    return app.state.store


def _editor() -> ClothingEditor:
    return app.state.editor


def _bad_request(error: ValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(error))


def _gateway_http_error(error: GatewayError) -> HTTPException:
    """Map a data-returning gateway failure to an HTTP error."""
    if isinstance(error.outcome, RateLimited):
        status_code = 429
    elif isinstance(error.outcome, PaymentRequired):
        status_code = 402
    else:
        status_code = 502
    return HTTPException(status_code=status_code, detail=error.outcome.message)


def _gateway_image(reference: str) -> str:
    """Validate an image reference bound for the gateway.

    ``data:`` URIs are decoded and checked with Pillow against the upload
    limit; URLs only get the scheme check.

    Raises:
        ValidationError: If the reference is missing, not an image, or too large.
    """
    image = validate_image_reference(reference)
    if image.startswith("data:"):
        decode_image_data_uri(image, config.max_upload_bytes)
    return image


def _require_record(image_id: str) -> dict:
    record = _store().get_record(image_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return record


# ---------------------------------------------------------------------------
# Gateway routes.
# ---------------------------------------------------------------------------


@app.get("/api/health")
async def health() -> dict:
    """Return service status, version and whether the gateway is configured."""
    return {
        "status": "healthy",
        "version": __version__,
        "gateway_configured": app.state.gateway.is_configured,
    }


@app.post("/api/analyze")
async def analyze_clothing(req: AnalyzeRequest) -> dict:
    """Detect the clothing items visible in an image.

    Returns:
        Dictionary with a ``clothing`` list.

    Raises:
        HTTPException: 400 for an invalid image reference; 429, 402 or 502
            when the gateway call fails.
    """
    try:
        image = _gateway_image(req.image)
    except ValidationError as e:
        raise _bad_request(e) from e

    try:
        clothing = await _editor().analyze_clothing(image)
    except GatewayError as e:
        raise _gateway_http_error(e) from e
    return {"clothing": clothing}


@app.post("/api/edit", response_model=EditResponse)
async def edit_clothing(req: EditRequest) -> EditResponse:
    """Regenerate an image with different clothing.

    This endpoint:

    1. Validates the image reference and prompt (400 on failure, before
       any gateway call).
    2. Runs the clothing editor, which sanitizes the prompt and calls the
       gateway.
    3. Records successful edits in the edit history.

    Returns:
        An :class:`EditResponse` describing the outcome.
    """
    try:
        image = _gateway_image(req.image)
        prompt = validate_prompt(req.prompt)
    except ValidationError as e:
        raise _bad_request(e) from e

    outcome = await _editor().request_edit(image, prompt)

    if isinstance(outcome, EditSuccess):
        try:
            _store().record_edit(prompt)
        except StorageError as e:
            logger.error(f"Failed to record edit history: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e)) from e
    else:
        logger.info(f"Edit finished without an image: {outcome.kind}")

    return EditResponse.from_outcome(outcome)


@app.post("/api/try-on", response_model=EditResponse)
async def virtual_try_on(req: TryOnRequest) -> EditResponse:
    """Render a clothing item on a model with the requested body type and pose."""
    try:
        image = _gateway_image(req.clothing_image)
    except ValidationError as e:
        raise _bad_request(e) from e

    outcome = await _editor().virtual_try_on(image, req.body_type, req.pose)
    return EditResponse.from_outcome(outcome)


@app.post("/api/suggestions")
async def outfit_suggestions(req: SuggestionRequest) -> dict:
    """Suggest outfits combining pieces from the gallery.

    Raises:
        HTTPException: 429, 402 or 502 when the gateway call fails or its
            reply cannot be parsed.
    """
    records = _store().list_records()
    try:
        suggestions = await _editor().suggest_outfits(
            records,
            season=req.season,
            occasion=req.occasion,
            style=req.style_preference,
        )
    except GatewayError as e:
        raise _gateway_http_error(e) from e
    return {"suggestions": suggestions}


@app.post("/api/prompt/sanitize")
async def sanitize_prompt(req: SanitizeRequest) -> dict:
    """Preview what the sanitizer does to a prompt, without calling the gateway."""
    result = sanitize(req.prompt)
    return {
        "cleaned_prompt": result.cleaned_prompt,
        "removed_terms": list(result.removed_terms),
        "was_sanitized": result.was_sanitized,
    }


# ---------------------------------------------------------------------------
# Gallery routes.
# ---------------------------------------------------------------------------


@app.get("/api/gallery")
async def get_gallery(
    q: str = "",
    tags: list[str] = Query(default=[]),
    favorites_only: bool = False,
    sort: str = "newest",
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
) -> dict:
    """Return the filtered, sorted, paginated gallery.

    Args:
        q: Case-insensitive search over filename and description.
        tags: Tags every returned image must carry (repeat the parameter).
        favorites_only: If ``True``, return only favorite images.
        sort: ``newest``, ``oldest`` or ``favorites``.
        page: Page number (1-indexed, clamped to the last page).
        per_page: Number of images per page.

    Returns:
        Dictionary with keys ``total``, ``page``, ``per_page``, ``pages``,
        and ``images``.

    Raises:
        HTTPException: 400 for an unknown sort key.
    """
    if sort not in gallery_store.SORT_KEYS:
        raise HTTPException(
            status_code=400,
            detail=f"sort must be one of: {', '.join(gallery_store.SORT_KEYS)}",
        )

    view = gallery_store.derive_view(
        _store().list_records(),
        query=q,
        tag_filter=gallery_store.normalize_tags(tags),
        favorites_only=favorites_only,
        sort_key=sort,
    )
    return gallery_store.paginate(view, page, per_page)


@app.post("/api/gallery")
async def save_image(req: SaveImageRequest) -> dict:
    """Save an uploaded image, and optionally its edited version, to the gallery.

    Raises:
        HTTPException: 400 if an image is not a valid, small-enough image;
            500 if storage fails.
    """
    try:
        original = decode_image_data_uri(req.original_image, config.max_upload_bytes)
        edited = None
        edited_url = None
        if req.edited_image:
            if req.edited_image.startswith("data:"):
                edited = decode_image_data_uri(req.edited_image, config.max_upload_bytes)
            else:
                edited_url = validate_image_reference(req.edited_image)
    except ValidationError as e:
        raise _bad_request(e) from e

    try:
        record = _store().add_record(
            original=(original.data, original.extension),
            edited=(edited.data, edited.extension) if edited else None,
            edited_url=edited_url,
            filename=req.filename,
            tags=req.tags,
            description=req.description,
            width=original.width,
            height=original.height,
        )
    except StorageError as e:
        logger.error(f"Failed to save image: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return record


@app.get("/api/gallery/tags")
async def get_tags() -> dict:
    """Return every distinct tag in the gallery, sorted."""
    return {"tags": gallery_store.available_tags(_store().list_records())}


@app.post("/api/gallery/favorite")
async def set_favorite(req: FavoriteRequest) -> dict:
    """Set the favorite status of a gallery image.

    Raises:
        HTTPException: 404 if the image is not found.
    """
    try:
        record = _store().update_record(req.image_id, is_favorite=req.is_favorite)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if record is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return {"success": True, "id": req.image_id, "is_favorite": req.is_favorite}


@app.get("/api/gallery/{image_id}")
async def get_image(image_id: str) -> dict:
    """Return a single gallery record.

    Raises:
        HTTPException: 404 if the image is not found.
    """
    return _require_record(image_id)


@app.patch("/api/gallery/{image_id}")
async def update_image(image_id: str, req: UpdateImageRequest) -> dict:
    """Replace the tags and/or description of a gallery image.

    Raises:
        HTTPException: 404 if the image is not found.
    """
    changes = req.model_dump(exclude_none=True)
    try:
        record = _store().update_record(image_id, **changes)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if record is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return record


@app.delete("/api/gallery/{image_id}")
async def delete_image(image_id: str) -> dict:
    """Delete an image blob, then its record.

    If the blob cannot be removed the record is kept and a 500 carrying the
    storage error is returned.

    Raises:
        HTTPException: 404 if the image is not found; 500 on storage failure.
    """
    try:
        deleted = _store().delete_record(image_id)
    except StorageError as e:
        logger.error(f"Failed to delete image {image_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Image not found")
    return {"success": True, "deleted": image_id}


# ---------------------------------------------------------------------------
# Collections and saved prompts.
# ---------------------------------------------------------------------------


def _require_collection(collection_id: str) -> dict:
    collection = _store().get_collection(collection_id)
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return collection


@app.get("/api/collections")
async def list_collections() -> dict:
    """Return every collection, newest first, with its image count."""
    return {"collections": _store().list_collections()}


@app.post("/api/collections")
async def create_collection(req: CollectionRequest) -> dict:
    try:
        return _store().create_collection(req.name, req.description)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/api/collections/{collection_id}")
async def get_collection(collection_id: str) -> dict:
    """Return a collection together with its gallery records.

    Raises:
        HTTPException: 404 if the collection is not found.
    """
    collection = _require_collection(collection_id)
    return {**collection, "images": _store().collection_images(collection_id)}


@app.patch("/api/collections/{collection_id}")
async def update_collection(collection_id: str, req: UpdateCollectionRequest) -> dict:
    try:
        collection = _store().update_collection(collection_id, **req.model_dump(exclude_none=True))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return collection


@app.delete("/api/collections/{collection_id}")
async def delete_collection(collection_id: str) -> dict:
    try:
        deleted = _store().delete_collection(collection_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Collection not found")
    return {"success": True, "deleted": collection_id}


@app.post("/api/collections/{collection_id}/images")
async def add_to_collection(collection_id: str, req: CollectionImagesRequest) -> dict:
    """Add gallery images to a collection.

    Raises:
        HTTPException: 404 if the collection or any of the images is not found.
    """
    _require_collection(collection_id)
    known = {record.get("id") for record in _store().list_records()}
    missing = [image_id for image_id in req.image_ids if image_id not in known]
    if missing:
        raise HTTPException(status_code=404, detail=f"Image not found: {', '.join(missing)}")

    try:
        collection = _store().add_to_collection(collection_id, req.image_ids)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    logger.info(f"Added {len(req.image_ids)} image(s) to collection {collection_id}")
    return collection


@app.delete("/api/collections/{collection_id}/images/{image_id}")
async def remove_from_collection(collection_id: str, image_id: str) -> dict:
    try:
        collection = _store().remove_from_collection(collection_id, image_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if collection is None:
        raise HTTPException(status_code=404, detail="Collection not found")
    return collection


@app.get("/api/prompts")
async def list_saved_prompts() -> dict:
    """Return the saved prompt library, most used first."""
    return {"prompts": _store().list_saved_prompts()}


@app.post("/api/prompts")
async def create_saved_prompt(req: SavedPromptRequest) -> dict:
    try:
        return _store().create_saved_prompt(req.name, req.prompt, req.category)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.patch("/api/prompts/{prompt_id}")
async def update_saved_prompt(prompt_id: str, req: UpdateSavedPromptRequest) -> dict:
    try:
        entry = _store().update_saved_prompt(prompt_id, **req.model_dump(exclude_none=True))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if entry is None:
        raise HTTPException(status_code=404, detail="Saved prompt not found")
    return entry


@app.delete("/api/prompts/{prompt_id}")
async def delete_saved_prompt(prompt_id: str) -> dict:
    try:
        deleted = _store().delete_saved_prompt(prompt_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Saved prompt not found")
    return {"success": True, "deleted": prompt_id}


@app.post("/api/prompts/{prompt_id}/use")
async def use_saved_prompt(prompt_id: str) -> dict:
    """Count one use of a saved prompt and return it for the edit form.

    Raises:
        HTTPException: 404 if the saved prompt is not found.
    """
    try:
        entry = _store().use_saved_prompt(prompt_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    if entry is None:
        raise HTTPException(status_code=404, detail="Saved prompt not found")
    return entry


# ---------------------------------------------------------------------------
# Share links and statistics.
# ---------------------------------------------------------------------------


@app.post("/api/share")
async def create_share_link(req: ShareRequest) -> dict:
    """Create a share token for an image.

    Raises:
        HTTPException: 404 if the image is not found.
    """
    _require_record(req.image_id)
    try:
        link = _store().create_share_link(req.image_id, req.expires_in_days)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {**link, "path": f"/share/{link['token']}"}


@app.get("/api/share/{token}")
async def resolve_share_link(token: str) -> dict:
    """Return the image behind a share token.

    Raises:
        HTTPException: 404 for an unknown token or a deleted image; 410 if
            the link has expired.
    """
    link = _store().get_share_link(token)
    if link is None:
        raise HTTPException(status_code=404, detail="Share link not found")
    if gallery_store.is_expired(link):
        raise HTTPException(status_code=410, detail="Share link has expired")
    record = _require_record(link["image_id"])
    return {"link": link, "image": record}


@app.get("/api/stats")
async def get_stats() -> dict:
    """Return usage statistics for the gallery and edit history."""
    store = _store()
    return gallery_store.compute_stats(store.list_records(), store.list_history())


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~restyle.core.config.config`
    (``RESTYLE_SERVER_HOST`` and ``RESTYLE_SERVER_PORT``).  Defaults to
    ``0.0.0.0:8000``.

    This function is registered as the ``restyle`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "restyle.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
