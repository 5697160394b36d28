"""Integration tests for restyle.api.main — FastAPI REST API endpoints.

All tests use the FastAPI TestClient with a temporary gallery store and a
fake gateway behind ``httpx.MockTransport``, so no network access occurs.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from restyle.api import main as api_main
from restyle.api.gallery_store import save_json_list
from restyle.core.prompt_safety import SAFETY_QUALIFIER

EDITED = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUg=="


def save(test_client, png_data_uri, **overrides) -> dict:
    """Save an image through the API and return the created record."""
    payload = {
        "original_image": png_data_uri,
        "filename": "outfit.png",
        "tags": [],
    }
    payload.update(overrides)
    resp = test_client.post("/api/gallery", json=payload)
    assert resp.status_code == 200, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Health.
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, test_client):
        resp = test_client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert "version" in data


# ---------------------------------------------------------------------------
# Edit endpoint.
# ---------------------------------------------------------------------------


class TestEdit:
    """Test POST /api/edit."""

    def test_edit_success(self, test_client, fake_gateway, png_data_uri, store):
        fake_gateway.reply_image(EDITED)
        resp = test_client.post("/api/edit", json={"image": png_data_uri, "prompt": "a denim jacket"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["kind"] == "success"
        assert data["edited_image"] == EDITED
        assert data["sanitized"] is False
        assert [entry["prompt"] for entry in store.list_history()] == ["a denim jacket"]

    def test_edit_reports_sanitization(self, test_client, fake_gateway, png_data_uri):
        fake_gateway.reply_image(EDITED)
        resp = test_client.post(
            "/api/edit", json={"image": png_data_uri, "prompt": "a sexy see-through red dress"}
        )
        data = resp.json()
        assert data["sanitized"] is True
        assert data["removed_terms"] == ["sexy", "see-through"]
        assert data["cleaned_prompt"] == f"a red dress {SAFETY_QUALIFIER}"

    def test_rate_limited_is_not_an_http_error(self, test_client, fake_gateway, png_data_uri, store):
        fake_gateway.reply(429, text="slow down")
        resp = test_client.post("/api/edit", json={"image": png_data_uri, "prompt": "a hat"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is False
        assert data["kind"] == "rate_limited"
        assert store.list_history() == []

    def test_blocked_by_filter(self, test_client, fake_gateway, png_data_uri):
        fake_gateway.reply_message({"content": ""}, finish_reason="content_filter")
        resp = test_client.post("/api/edit", json={"image": png_data_uri, "prompt": "a hat"})
        data = resp.json()
        assert data["kind"] == "blocked_by_filter"
        assert data["edited_image"] is None

    def test_blank_prompt_rejected_before_gateway(self, test_client, fake_gateway, png_data_uri):
        resp = test_client.post("/api/edit", json={"image": png_data_uri, "prompt": "   "})
        assert resp.status_code == 400
        assert fake_gateway.requests == []

    def test_non_image_rejected_before_gateway(self, test_client, fake_gateway):
        resp = test_client.post(
            "/api/edit", json={"image": "data:text/plain;base64,aGk=", "prompt": "a hat"}
        )
        assert resp.status_code == 400
        assert fake_gateway.requests == []

    def test_missing_field(self, test_client):
        resp = test_client.post("/api/edit", json={"prompt": "a hat"})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Other gateway endpoints.
# ---------------------------------------------------------------------------


class TestAnalyze:
    def test_analyze(self, test_client, fake_gateway, png_data_uri):
        fake_gateway.reply_text("blue jeans, white t-shirt")
        resp = test_client.post("/api/analyze", json={"image": png_data_uri})
        assert resp.status_code == 200
        assert resp.json() == {"clothing": ["blue jeans", "white t-shirt"]}

    @pytest.mark.parametrize("status, expected", [(429, 429), (402, 402), (500, 502)])
    def test_gateway_failures(self, test_client, fake_gateway, png_data_uri, status, expected):
        fake_gateway.reply(status, text="nope")
        resp = test_client.post("/api/analyze", json={"image": png_data_uri})
        assert resp.status_code == expected


class TestTryOn:
    def test_try_on(self, test_client, fake_gateway, png_data_uri):
        fake_gateway.reply_image(EDITED)
        resp = test_client.post(
            "/api/try-on",
            json={"clothing_image": png_data_uri, "body_type": "athletic", "pose": "fashion"},
        )
        assert resp.status_code == 200
        assert resp.json()["edited_image"] == EDITED


class TestSuggestions:
    def test_suggestions_use_gallery(self, test_client, fake_gateway, png_data_uri):
        save(test_client, png_data_uri, tags=["denim"], description="blue jacket")
        fake_gateway.reply_text('[{"name": "Casual Friday", "pieces": ["Image 1"]}]')
        resp = test_client.post("/api/suggestions", json={"occasion": "work"})
        assert resp.status_code == 200
        assert resp.json()["suggestions"][0]["name"] == "Casual Friday"
        prompt = fake_gateway.last_request["messages"][0]["content"]
        assert "Tags: denim, Description: blue jacket" in prompt

    def test_unparseable_suggestions(self, test_client, fake_gateway):
        fake_gateway.reply_text("not json")
        resp = test_client.post("/api/suggestions", json={})
        assert resp.status_code == 502


class TestGatewayImageValidation:
    """Images bound for the gateway are fully checked before any call."""

    ROUTES = [
        ("/api/edit", "image", {"prompt": "a red coat"}),
        ("/api/analyze", "image", {}),
        ("/api/try-on", "clothing_image", {}),
    ]

    @pytest.mark.parametrize("path, field, extra", ROUTES)
    def test_undecodable_image(self, test_client, fake_gateway, path, field, extra):
        payload = {field: "data:image/png;base64,not-an-image!!", **extra}
        resp = test_client.post(path, json=payload)
        assert resp.status_code == 400
        assert "base64" in resp.json()["detail"]
        assert fake_gateway.requests == []

    @pytest.mark.parametrize("path, field, extra", ROUTES)
    def test_garbage_bytes(self, test_client, fake_gateway, path, field, extra):
        payload = {field: "data:image/png;base64,aGVsbG8gd29ybGQ=", **extra}
        resp = test_client.post(path, json=payload)
        assert resp.status_code == 400
        assert "not a readable image" in resp.json()["detail"]
        assert fake_gateway.requests == []

    @pytest.mark.parametrize("path, field, extra", ROUTES)
    def test_oversized_image(
        self, test_client, fake_gateway, png_data_uri, monkeypatch, path, field, extra
    ):
        monkeypatch.setattr(api_main.config, "max_upload_bytes", 16)
        resp = test_client.post(path, json={field: png_data_uri, **extra})
        assert resp.status_code == 400
        assert "too large" in resp.json()["detail"]
        assert fake_gateway.requests == []

    @pytest.mark.parametrize("path, field, extra", ROUTES)
    def test_url_reference_passes_through(self, test_client, fake_gateway, path, field, extra):
        if path == "/api/analyze":
            fake_gateway.reply_text("a hat")
        else:
            fake_gateway.reply_image(EDITED)
        resp = test_client.post(path, json={field: "https://cdn.test/photo.png", **extra})
        assert resp.status_code == 200
        sent = fake_gateway.last_request["messages"][0]["content"][1]
        assert sent["image_url"]["url"] == "https://cdn.test/photo.png"


class TestSanitizePreview:
    def test_preview(self, test_client, fake_gateway):
        resp = test_client.post("/api/prompt/sanitize", json={"prompt": "a Sheer top"})
        assert resp.json() == {
            "cleaned_prompt": f"a top {SAFETY_QUALIFIER}",
            "removed_terms": ["Sheer"],
            "was_sanitized": True,
        }
        assert fake_gateway.requests == []


# ---------------------------------------------------------------------------
# Gallery endpoints.
# ---------------------------------------------------------------------------


class TestSaveImage:
    def test_save_original_only(self, test_client, png_data_uri, store):
        record = save(test_client, png_data_uri, tags=["denim", "denim"], description="first")
        assert record["tags"] == ["denim"]
        assert record["width"] == 8
        assert record["height"] == 6
        assert (store.media_dir / record["storage_path"]).exists()

    def test_save_with_edited_data_uri(self, test_client, png_factory, png_data_uri, store):
        record = save(test_client, png_data_uri, edited_image=png_factory(4, 4, "blue"))
        assert record["edited_url"].startswith("/media/")
        assert (store.media_dir / record["edited_storage_path"]).exists()

    def test_save_with_edited_url(self, test_client, png_data_uri):
        record = save(test_client, png_data_uri, edited_image="https://cdn.test/e.png")
        assert record["edited_url"] == "https://cdn.test/e.png"

    def test_oversized_upload_rejected(self, test_client, png_data_uri, store, monkeypatch):
        monkeypatch.setattr(api_main.config, "max_upload_bytes", 16)
        resp = test_client.post(
            "/api/gallery", json={"original_image": png_data_uri, "filename": "big.png"}
        )
        assert resp.status_code == 400
        assert "too large" in resp.json()["detail"]
        assert store.list_records() == []

    def test_non_image_rejected(self, test_client, store):
        resp = test_client.post(
            "/api/gallery",
            json={"original_image": "data:text/plain;base64,aGk=", "filename": "a.txt"},
        )
        assert resp.status_code == 400
        assert store.list_records() == []


class TestListGallery:
    def test_filters_and_sort(self, test_client, png_data_uri):
        jacket = save(test_client, png_data_uri, filename="jacket.png", tags=["denim"])
        shorts = save(test_client, png_data_uri, filename="shorts.png", tags=["denim", "summer"])
        save(test_client, png_data_uri, filename="tux.png", tags=["formal"])

        resp = test_client.get("/api/gallery", params={"tags": ["denim"], "sort": "oldest"})
        assert [r["id"] for r in resp.json()["images"]] == [jacket["id"], shorts["id"]]

        resp = test_client.get("/api/gallery", params=[("tags", "denim"), ("tags", "summer")])
        assert [r["id"] for r in resp.json()["images"]] == [shorts["id"]]

        resp = test_client.get("/api/gallery", params={"q": "JACK"})
        assert [r["id"] for r in resp.json()["images"]] == [jacket["id"]]

    def test_favorites_only(self, test_client, png_data_uri):
        first = save(test_client, png_data_uri)
        save(test_client, png_data_uri)
        test_client.post("/api/gallery/favorite", json={"image_id": first["id"], "is_favorite": True})

        resp = test_client.get("/api/gallery", params={"favorites_only": True})
        assert [r["id"] for r in resp.json()["images"]] == [first["id"]]

        resp = test_client.get("/api/gallery", params={"sort": "favorites"})
        assert resp.json()["images"][0]["id"] == first["id"]

    def test_pagination(self, test_client, png_data_uri):
        for _ in range(3):
            save(test_client, png_data_uri)
        data = test_client.get("/api/gallery", params={"per_page": 2, "page": 5}).json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert data["page"] == 2
        assert len(data["images"]) == 1

    def test_unknown_sort(self, test_client):
        assert test_client.get("/api/gallery", params={"sort": "random"}).status_code == 400

    def test_bad_per_page(self, test_client):
        assert test_client.get("/api/gallery", params={"per_page": 0}).status_code == 422

    def test_tags_endpoint(self, test_client, png_data_uri):
        save(test_client, png_data_uri, tags=["summer", "denim"])
        save(test_client, png_data_uri, tags=["denim"])
        assert test_client.get("/api/gallery/tags").json() == {"tags": ["denim", "summer"]}


class TestSingleImage:
    def test_get_image(self, test_client, png_data_uri):
        record = save(test_client, png_data_uri)
        assert test_client.get(f"/api/gallery/{record['id']}").json() == record

    def test_get_missing(self, test_client):
        assert test_client.get("/api/gallery/missing").status_code == 404

    def test_update_tags_and_description(self, test_client, png_data_uri):
        record = save(test_client, png_data_uri, description="old")
        resp = test_client.patch(f"/api/gallery/{record['id']}", json={"tags": ["new"]})
        assert resp.status_code == 200
        assert resp.json()["tags"] == ["new"]
        assert resp.json()["description"] == "old"

    def test_update_missing(self, test_client):
        assert test_client.patch("/api/gallery/missing", json={"tags": []}).status_code == 404

    def test_favorite_missing(self, test_client):
        resp = test_client.post("/api/gallery/favorite", json={"image_id": "x", "is_favorite": True})
        assert resp.status_code == 404


class TestDeleteImage:
    def test_delete(self, test_client, png_data_uri, store):
        record = save(test_client, png_data_uri)
        resp = test_client.delete(f"/api/gallery/{record['id']}")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "deleted": record["id"]}
        assert store.list_records() == []
        assert not (store.media_dir / record["storage_path"]).exists()

    def test_delete_missing(self, test_client):
        assert test_client.delete("/api/gallery/missing").status_code == 404

    def test_storage_failure_keeps_record(self, test_client, png_data_uri, store, monkeypatch):
        record = save(test_client, png_data_uri)

        def broken_unlink(self, missing_ok=False):
            raise PermissionError("bucket is read-only")

        monkeypatch.setattr(Path, "unlink", broken_unlink)
        resp = test_client.delete(f"/api/gallery/{record['id']}")
        assert resp.status_code == 500
        assert "bucket is read-only" in resp.json()["detail"]
        assert store.get_record(record["id"]) is not None


# ---------------------------------------------------------------------------
# Share links and stats.
# ---------------------------------------------------------------------------


class TestShareLinks:
    def test_create_and_resolve(self, test_client, png_data_uri):
        record = save(test_client, png_data_uri)
        link = test_client.post("/api/share", json={"image_id": record["id"]}).json()
        assert link["path"] == f"/share/{link['token']}"

        resp = test_client.get(f"/api/share/{link['token']}")
        assert resp.status_code == 200
        assert resp.json()["image"]["id"] == record["id"]

    def test_share_missing_image(self, test_client):
        assert test_client.post("/api/share", json={"image_id": "x"}).status_code == 404

    def test_unknown_token(self, test_client):
        assert test_client.get("/api/share/nope").status_code == 404

    def test_expired_link(self, test_client, png_data_uri, store):
        record = save(test_client, png_data_uri)
        link = store.create_share_link(record["id"], expires_in_days=1)
        links = store.list_share_links()
        links[0]["expires_at"] = link["created_at"] - 1
        save_json_list(store.share_db, links)
        assert test_client.get(f"/api/share/{link['token']}").status_code == 410


class TestStats:
    def test_stats(self, test_client, fake_gateway, png_data_uri):
        record = save(test_client, png_data_uri, tags=["denim"])
        test_client.post("/api/gallery/favorite", json={"image_id": record["id"], "is_favorite": True})
        fake_gateway.reply_image(EDITED)
        test_client.post("/api/edit", json={"image": png_data_uri, "prompt": "a red coat"})

        data = test_client.get("/api/stats").json()
        assert data["total_images"] == 1
        assert data["total_favorites"] == 1
        assert data["total_edits"] == 1
        assert data["top_tags"] == [{"tag": "denim", "count": 1}]
        assert data["top_prompts"] == [{"prompt": "a red coat", "count": 1}]
        assert len(data["recent_activity"]) == 1


# ---------------------------------------------------------------------------
# Collections and saved prompts.
# ---------------------------------------------------------------------------


class TestCollections:
    def test_lifecycle(self, test_client, png_data_uri):
        image = save(test_client, png_data_uri)
        created = test_client.post("/api/collections", json={"name": "Summer"}).json()
        assert created["image_count"] == 0

        resp = test_client.post(
            f"/api/collections/{created['id']}/images", json={"image_ids": [image["id"]]}
        )
        assert resp.status_code == 200
        assert resp.json()["image_count"] == 1

        detail = test_client.get(f"/api/collections/{created['id']}").json()
        assert [r["id"] for r in detail["images"]] == [image["id"]]

        listed = test_client.get("/api/collections").json()["collections"]
        assert [(c["name"], c["image_count"]) for c in listed] == [("Summer", 1)]

        resp = test_client.patch(f"/api/collections/{created['id']}", json={"name": "Beach"})
        assert resp.json()["name"] == "Beach"

        resp = test_client.delete(f"/api/collections/{created['id']}/images/{image['id']}")
        assert resp.json()["image_count"] == 0

        resp = test_client.delete(f"/api/collections/{created['id']}")
        assert resp.json() == {"success": True, "deleted": created["id"]}
        assert test_client.get(f"/api/collections/{created['id']}").status_code == 404

    def test_name_required(self, test_client):
        assert test_client.post("/api/collections", json={"name": ""}).status_code == 422

    def test_unknown_image_rejected(self, test_client):
        created = test_client.post("/api/collections", json={"name": "Summer"}).json()
        resp = test_client.post(
            f"/api/collections/{created['id']}/images", json={"image_ids": ["ghost"]}
        )
        assert resp.status_code == 404
        assert "ghost" in resp.json()["detail"]

    def test_unknown_collection(self, test_client):
        assert test_client.patch("/api/collections/x", json={"name": "y"}).status_code == 404
        assert test_client.delete("/api/collections/x").status_code == 404
        resp = test_client.post("/api/collections/x/images", json={"image_ids": ["a"]})
        assert resp.status_code == 404
        assert test_client.delete("/api/collections/x/images/a").status_code == 404


class TestSavedPrompts:
    def test_lifecycle(self, test_client):
        created = test_client.post(
            "/api/prompts", json={"name": "Denim", "prompt": "a blue denim jacket"}
        ).json()
        assert created["used_count"] == 0

        used = test_client.post(f"/api/prompts/{created['id']}/use").json()
        assert used["used_count"] == 1
        assert used["prompt"] == "a blue denim jacket"

        resp = test_client.patch(f"/api/prompts/{created['id']}", json={"category": "casual"})
        assert resp.json()["category"] == "casual"

        assert test_client.get("/api/prompts").json()["prompts"][0]["id"] == created["id"]
        assert test_client.delete(f"/api/prompts/{created['id']}").status_code == 200
        assert test_client.get("/api/prompts").json() == {"prompts": []}

    def test_name_and_prompt_required(self, test_client):
        assert test_client.post("/api/prompts", json={"name": "x", "prompt": ""}).status_code == 422
        assert test_client.post("/api/prompts", json={"prompt": "a hat"}).status_code == 422

    def test_unknown_prompt(self, test_client):
        assert test_client.post("/api/prompts/x/use").status_code == 404
        assert test_client.patch("/api/prompts/x", json={"name": "y"}).status_code == 404
        assert test_client.delete("/api/prompts/x").status_code == 404


class TestTagCase:
    def test_tags_stored_lowercase_and_filter_case_insensitive(self, test_client, png_data_uri):
        record = save(test_client, png_data_uri, tags=["Denim", "denim"])
        assert record["tags"] == ["denim"]
        resp = test_client.get("/api/gallery", params={"tags": ["DENIM"]})
        assert [r["id"] for r in resp.json()["images"]] == [record["id"]]
