"""Gallery storage and query helpers for the Restyle API.

This module isolates the gallery persistence logic from ``restyle.api.main``
so route handlers can focus on HTTP concerns while the file-backed store
remains testable as a small unit.

The store is intentionally simple:

- image records live in ``gallery.json``
- edit history lives in ``edit_history.json``
- share links live in ``share_links.json``
- collections live in ``collections.json``
- saved prompts live in ``saved_prompts.json``
- image blobs live in the media directory

Every read goes back to disk and every mutation rewrites the whole file.
There is no incremental patching and no conflict detection; the last
writer wins.

Query Engine
------------
:func:`derive_view` turns the stored records into the list a gallery page
shows: free-text search, tag intersection, favorites-only, then one of
three sort orders.  The filters are a plain conjunction so their order
does not matter.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Literal

logger = logging.getLogger(__name__)

SortKey = Literal["newest", "oldest", "favorites"]
SORT_KEYS: tuple[str, ...] = ("newest", "oldest", "favorites")

TOP_TAG_LIMIT = 10
TOP_PROMPT_LIMIT = 5
PROMPT_SUMMARY_LENGTH = 50
ACTIVITY_DAYS = 7


class StorageError(Exception):
    """A blob or record could not be written or removed."""


# ---------------------------------------------------------------------------
# JSON persistence helpers.
# ---------------------------------------------------------------------------


def load_json_list(path: Path) -> list[dict]:
    """Load a JSON list of objects, returning ``[]`` for a missing or invalid file.

    Non-object items are dropped.
    """
    if not path.exists():
        return []
    try:
        with open(path, encoding="utf-8") as handle:
            raw = json.load(handle)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read {path}, treating as empty: {e}")
        return []
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, dict)]


def save_json_list(path: Path, items: list[dict]) -> None:
    """Persist a list of objects to disk.

    Raises:
        StorageError: If the file cannot be written.
    """
    try:
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(items, handle, indent=2)
    except OSError as e:
        raise StorageError(f"Failed to write {path.name}: {e}") from e


# ---------------------------------------------------------------------------
# Blob helpers.
# ---------------------------------------------------------------------------


def store_blob(media_dir: Path, data: bytes, extension: str) -> str:
    """Write image bytes under a fresh name and return that name.

    Raises:
        StorageError: If the write fails.
    """
    name = f"{uuid.uuid4()}.{extension}"
    try:
        (media_dir / name).write_bytes(data)
    except OSError as e:
        raise StorageError(f"Failed to upload image: {e}") from e
    return name


def remove_blob(media_dir: Path, storage_path: str) -> None:
    """Remove one image blob.  An already-missing blob counts as removed.

    Raises:
        StorageError: If the file exists but cannot be removed.
    """
    filepath = media_dir / storage_path
    try:
        filepath.unlink(missing_ok=True)
    except OSError as e:
        raise StorageError(f"Error deleting from storage: {e}") from e


# ---------------------------------------------------------------------------
# Record store.
# ---------------------------------------------------------------------------


class GalleryStore:
    """File-backed owner of images, history, share links, collections and prompts.

    Attributes:
        data_dir (Path): Directory holding the JSON files.
        media_dir (Path): Directory holding image blobs.
    """

    def __init__(self, data_dir: Path, media_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.media_dir = Path(media_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.media_dir.mkdir(parents=True, exist_ok=True)

    @property
    def gallery_db(self) -> Path:
        return self.data_dir / "gallery.json"

    @property
    def history_db(self) -> Path:
        return self.data_dir / "edit_history.json"

    @property
    def share_db(self) -> Path:
        return self.data_dir / "share_links.json"

    @property
    def collections_db(self) -> Path:
        return self.data_dir / "collections.json"

    @property
    def prompts_db(self) -> Path:
        return self.data_dir / "saved_prompts.json"

    # --- Image records -----------------------------------------------------

    def list_records(self) -> list[dict]:
        return load_json_list(self.gallery_db)

    def get_record(self, image_id: str) -> dict | None:
        return next((r for r in self.list_records() if r.get("id") == image_id), None)

    def add_record(
        self,
        *,
        original: tuple[bytes, str],
        edited: tuple[bytes, str] | None = None,
        edited_url: str | None = None,
        filename: str,
        tags: Iterable[str] = (),
        description: str | None = None,
        width: int | None = None,
        height: int | None = None,
    ) -> dict:
        """Store the original (and optional edited) image and insert a record.

        Args:
            original: ``(bytes, extension)`` of the uploaded image.
            edited: ``(bytes, extension)`` of the edited image, if any.
            edited_url: Remote URL of the edited image, used when the edited
                image is not stored locally.
            filename: Display filename supplied by the user.
            tags: Initial tags; duplicates and blanks are dropped.
            description: Optional free-text description.
            width: Original image width in pixels.
            height: Original image height in pixels.

        Returns:
            The new record.

        Raises:
            StorageError: If a blob or the record file cannot be written.
        """
        storage_path = store_blob(self.media_dir, *original)
        edited_path = store_blob(self.media_dir, *edited) if edited else None
        if edited_path:
            edited_url = f"/media/{edited_path}"

        record = {
            "id": str(uuid.uuid4()),
            "original_url": f"/media/{storage_path}",
            "edited_url": edited_url,
            "edited_storage_path": edited_path,
            "filename": filename,
            "uploaded_at": datetime.now(timezone.utc).timestamp(),
            "tags": normalize_tags(tags),
            "is_favorite": False,
            "description": description,
            "storage_path": storage_path,
            "width": width,
            "height": height,
        }

        records = self.list_records()
        records.insert(0, record)
        save_json_list(self.gallery_db, records)
        logger.info(f"Saved image {record['id']} ({filename})")
        return record

    def update_record(self, image_id: str, **changes) -> dict | None:
        """Apply field changes to one record and persist.

        Returns:
            The updated record, or ``None`` when *image_id* is unknown.
        """
        records = self.list_records()
        record = next((r for r in records if r.get("id") == image_id), None)
        if record is None:
            return None
        if "tags" in changes:
            changes["tags"] = normalize_tags(changes["tags"])
        record.update(changes)
        save_json_list(self.gallery_db, records)
        return record

    def delete_record(self, image_id: str) -> bool:
        """Delete a record and its blobs.

        Blobs go first, the edited one before the original.  If removing a
        blob fails the record is kept and the :class:`StorageError`
        propagates.  When only the original fails, the kept record loses its
        edited fields, so no record ever points at a missing blob because of
        a half-finished delete.

        Returns:
            ``False`` when *image_id* is unknown.
        """
        record = self.get_record(image_id)
        if record is None:
            return False

        edited_path = record.get("edited_storage_path")
        if edited_path:
            remove_blob(self.media_dir, edited_path)
        try:
            remove_blob(self.media_dir, record["storage_path"])
        except StorageError:
            if edited_path:
                self.update_record(image_id, edited_url=None, edited_storage_path=None)
            raise

        records = [r for r in self.list_records() if r.get("id") != image_id]
        save_json_list(self.gallery_db, records)

        # Drop share links and collection memberships of the deleted image.
        links = [link for link in self.list_share_links() if link.get("image_id") != image_id]
        save_json_list(self.share_db, links)

        collections = load_json_list(self.collections_db)
        grouped = [c for c in collections if image_id in (c.get("image_ids") or [])]
        for collection in grouped:
            collection["image_ids"].remove(image_id)
        if grouped:
            save_json_list(self.collections_db, collections)

        logger.info(f"Deleted image {image_id}")
        return True

    # --- Edit history ------------------------------------------------------

    def list_history(self) -> list[dict]:
        return load_json_list(self.history_db)

    def record_edit(self, prompt: str, image_id: str | None = None) -> dict:
        entry = {
            "id": str(uuid.uuid4()),
            "prompt": prompt,
            "image_id": image_id,
            "created_at": datetime.now(timezone.utc).timestamp(),
        }
        history = self.list_history()
        history.insert(0, entry)
        save_json_list(self.history_db, history)
        return entry

    # --- Share links -------------------------------------------------------

    def list_share_links(self) -> list[dict]:
        return load_json_list(self.share_db)

    def create_share_link(self, image_id: str, expires_in_days: int | None = None) -> dict:
        """Create a share token for an image, optionally expiring after N days."""
        now = datetime.now(timezone.utc)
        expires_at = (now + timedelta(days=expires_in_days)).timestamp() if expires_in_days else None
        link = {
            "token": str(uuid.uuid4()),
            "image_id": image_id,
            "created_at": now.timestamp(),
            "expires_at": expires_at,
        }
        links = self.list_share_links()
        links.append(link)
        save_json_list(self.share_db, links)
        return link

    def get_share_link(self, token: str) -> dict | None:
        return next((link for link in self.list_share_links() if link.get("token") == token), None)

    # --- Collections -------------------------------------------------------

    def list_collections(self) -> list[dict]:
        """Return collections newest first, each with an ``image_count``."""
        return [_with_image_count(c) for c in load_json_list(self.collections_db)]

    def get_collection(self, collection_id: str) -> dict | None:
        collection = _find_by_id(load_json_list(self.collections_db), collection_id)
        return _with_image_count(collection) if collection else None

    def create_collection(self, name: str, description: str | None = None) -> dict:
        collection = {
            "id": str(uuid.uuid4()),
            "name": name,
            "description": description,
            "created_at": datetime.now(timezone.utc).timestamp(),
            "image_ids": [],
        }
        collections = load_json_list(self.collections_db)
        collections.insert(0, collection)
        save_json_list(self.collections_db, collections)
        logger.info(f"Created collection {collection['id']} ({name})")
        return _with_image_count(collection)

    def update_collection(self, collection_id: str, **changes) -> dict | None:
        """Rename or re-describe a collection; ``None`` when it is unknown."""
        collection = _update_by_id(self.collections_db, collection_id, changes)
        return _with_image_count(collection) if collection else None

    def delete_collection(self, collection_id: str) -> bool:
        """Delete a collection.  The images it grouped are left untouched."""
        return _delete_by_id(self.collections_db, collection_id)

    def add_to_collection(self, collection_id: str, image_ids: Iterable[str]) -> dict | None:
        """Append images to a collection, skipping ones already in it.

        Returns:
            The updated collection, or ``None`` when it is unknown.
        """
        collections = load_json_list(self.collections_db)
        collection = _find_by_id(collections, collection_id)
        if collection is None:
            return None
        members = collection.setdefault("image_ids", [])
        for image_id in image_ids:
            if image_id not in members:
                members.append(image_id)
        save_json_list(self.collections_db, collections)
        return _with_image_count(collection)

    def remove_from_collection(self, collection_id: str, image_id: str) -> dict | None:
        collections = load_json_list(self.collections_db)
        collection = _find_by_id(collections, collection_id)
        if collection is None:
            return None
        collection["image_ids"] = [i for i in collection.get("image_ids") or [] if i != image_id]
        save_json_list(self.collections_db, collections)
        return _with_image_count(collection)

    def collection_images(self, collection_id: str) -> list[dict] | None:
        """Return the records in a collection, in the order they were added."""
        collection = self.get_collection(collection_id)
        if collection is None:
            return None
        records = {record.get("id"): record for record in self.list_records()}
        return [records[i] for i in collection.get("image_ids") or [] if i in records]

    # --- Saved prompts -----------------------------------------------------

    def list_saved_prompts(self) -> list[dict]:
        """Return saved prompts, most used first."""
        prompts = load_json_list(self.prompts_db)
        return sorted(prompts, key=lambda p: p.get("used_count") or 0, reverse=True)

    def create_saved_prompt(self, name: str, prompt: str, category: str | None = None) -> dict:
        entry = {
            "id": str(uuid.uuid4()),
            "name": name,
            "prompt": prompt,
            "category": category,
            "used_count": 0,
            "created_at": datetime.now(timezone.utc).timestamp(),
        }
        prompts = load_json_list(self.prompts_db)
        prompts.insert(0, entry)
        save_json_list(self.prompts_db, prompts)
        return entry

    def update_saved_prompt(self, prompt_id: str, **changes) -> dict | None:
        return _update_by_id(self.prompts_db, prompt_id, changes)

    def delete_saved_prompt(self, prompt_id: str) -> bool:
        return _delete_by_id(self.prompts_db, prompt_id)

    def use_saved_prompt(self, prompt_id: str) -> dict | None:
        """Count one use of a saved prompt and return it."""
        prompts = load_json_list(self.prompts_db)
        entry = _find_by_id(prompts, prompt_id)
        if entry is None:
            return None
        entry["used_count"] = (entry.get("used_count") or 0) + 1
        save_json_list(self.prompts_db, prompts)
        return entry


def _find_by_id(items: list[dict], item_id: str) -> dict | None:
    return next((item for item in items if item.get("id") == item_id), None)


def _update_by_id(path: Path, item_id: str, changes: Mapping) -> dict | None:
    items = load_json_list(path)
    item = _find_by_id(items, item_id)
    if item is None:
        return None
    item.update(changes)
    save_json_list(path, items)
    return item


def _delete_by_id(path: Path, item_id: str) -> bool:
    items = load_json_list(path)
    kept = [item for item in items if item.get("id") != item_id]
    if len(kept) == len(items):
        return False
    save_json_list(path, kept)
    return True


def _with_image_count(collection: dict) -> dict:
    return {**collection, "image_count": len(collection.get("image_ids") or [])}


def is_expired(link: Mapping, now: float | None = None) -> bool:
    expires_at = link.get("expires_at")
    if expires_at is None:
        return False
    if now is None:
        now = datetime.now(timezone.utc).timestamp()
    return now >= expires_at


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Strip and lowercase tags, drop blanks and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags or ():
        cleaned = str(tag).strip().lower()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


# ---------------------------------------------------------------------------
# Query engine.
# ---------------------------------------------------------------------------


def _matches_query(record: Mapping, needle: str) -> bool:
    if not needle:
        return True
    filename = (record.get("filename") or "").lower()
    description = (record.get("description") or "").lower()
    return needle in filename or needle in description


def _has_tags(record: Mapping, required: set[str]) -> bool:
    return required.issubset(record.get("tags") or ())


def _uploaded_at(record: Mapping) -> float:
    return record.get("uploaded_at") or 0.0


def derive_view(
    records: Iterable[Mapping],
    query: str = "",
    tag_filter: Iterable[str] = (),
    favorites_only: bool = False,
    sort_key: str = "newest",
) -> list:
    """Filter and sort gallery records for display.

    Args:
        records: Image records.  They are never mutated.
        query: Case-insensitive substring matched against ``filename`` or
            ``description``.  Empty matches everything.
        tag_filter: Tags a record must all carry.  Empty matches everything.
        favorites_only: Keep only records with ``is_favorite`` set.
        sort_key: ``"newest"``, ``"oldest"`` or ``"favorites"``.

    Returns:
        A new list of the matching records in display order.

    Raises:
        ValueError: For an unknown *sort_key*.
    """
    if sort_key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_key!r}")

    needle = (query or "").lower()
    required = set(tag_filter or ())

    view = [
        record
        for record in records
        if _matches_query(record, needle)
        and _has_tags(record, required)
        and (not favorites_only or record.get("is_favorite"))
    ]

    if sort_key == "oldest":
        view.sort(key=_uploaded_at)
    else:
        view.sort(key=_uploaded_at, reverse=True)
        if sort_key == "favorites":
            # Stable sort keeps the newest-first order inside each group.
            view.sort(key=lambda record: not record.get("is_favorite"))

    return view


def available_tags(records: Iterable[Mapping]) -> list[str]:
    """Return every distinct tag across *records*, sorted."""
    return sorted({tag for record in records for tag in (record.get("tags") or ())})


def paginate(entries: list, page: int, per_page: int) -> dict:
    """Paginate entries and clamp the requested page to valid bounds.

    Clamping matters after deletes: removing the last image on the last
    page moves the caller back one page instead of returning an empty one.

    Returns:
        Dictionary containing ``total``, ``page``, ``per_page``, ``pages``,
        and ``images``.
    """
    total = len(entries)
    pages = (total + per_page - 1) // per_page if total > 0 else 1
    resolved_page = min(max(page, 1), pages)

    start = (resolved_page - 1) * per_page
    end = start + per_page

    return {
        "total": total,
        "page": resolved_page,
        "per_page": per_page,
        "pages": pages,
        "images": entries[start:end],
    }


def compute_stats(
    records: Iterable[Mapping],
    history: Iterable[Mapping],
    now: datetime | None = None,
) -> dict:
    """Summarise gallery and edit activity.

    Returns:
        Dictionary with ``total_images``, ``total_favorites``,
        ``total_edits``, ``top_tags`` (ten most used), ``top_prompts`` (five
        most repeated, truncated to 50 characters) and ``recent_activity``
        (edits per UTC day over the last seven days, oldest first).
    """
    records = list(records)
    history = list(history)
    now = now or datetime.now(timezone.utc)

    tag_counts = Counter(tag for record in records for tag in (record.get("tags") or ()))
    prompt_counts = Counter(
        (entry.get("prompt") or "")[:PROMPT_SUMMARY_LENGTH] for entry in history
    )

    cutoff = (now - timedelta(days=ACTIVITY_DAYS)).timestamp()
    activity = Counter(
        datetime.fromtimestamp(entry["created_at"], tz=timezone.utc).date().isoformat()
        for entry in history
        if (entry.get("created_at") or 0) >= cutoff
    )

    return {
        "total_images": len(records),
        "total_favorites": sum(1 for record in records if record.get("is_favorite")),
        "total_edits": len(history),
        "top_tags": [
            {"tag": tag, "count": count} for tag, count in tag_counts.most_common(TOP_TAG_LIMIT)
        ],
        "top_prompts": [
            {"prompt": prompt, "count": count}
            for prompt, count in prompt_counts.most_common(TOP_PROMPT_LIMIT)
        ],
        "recent_activity": [
            {"date": date, "count": count} for date, count in sorted(activity.items())
        ],
    }
