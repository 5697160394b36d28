"""Shared pytest fixtures for Restyle tests."""

import base64
import io
import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator

# Point the global config at a throwaway location before anything imports it,
# so importing the app never creates data/ or media/ in the working tree.
_SESSION_DIR = Path(tempfile.mkdtemp(prefix="restyle-tests-"))
os.environ.setdefault("RESTYLE_DATA_DIR", str(_SESSION_DIR / "data"))
os.environ.setdefault("RESTYLE_MEDIA_DIR", str(_SESSION_DIR / "media"))

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402

from restyle.api.gallery_store import GalleryStore  # noqa: E402
from restyle.core.config import RestyleConfig  # noqa: E402
from restyle.core.editor import ClothingEditor  # noqa: E402
from restyle.core.gateway import GatewayClient  # noqa: E402


class FakeGateway:
    """Stands in for the AI gateway behind an ``httpx.MockTransport``.

    Queue responses with :meth:`reply` / :meth:`reply_image` /
    :meth:`fail`; each request consumes one.  Sent request bodies are kept
    in :attr:`requests`.
    """

    def __init__(self) -> None:
        self.requests: list[dict] = []
        self._responses: list = []

    def reply(self, status_code: int = 200, body=None, text: str | None = None) -> None:
        self._responses.append((status_code, body, text))

    def reply_message(self, message: dict, **choice) -> None:
        self.reply(body={"choices": [{"message": message, **choice}]})

    def reply_image(self, url: str = "data:image/png;base64,iVBORw0KGgo=") -> None:
        self.reply_message({"content": "", "images": [{"image_url": {"url": url}}]})

    def reply_text(self, text: str) -> None:
        self.reply_message({"content": text})

    def fail(self, error: Exception) -> None:
        self._responses.append(error)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if not self._responses:
            raise AssertionError("Unexpected gateway request")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        status_code, body, text = response
        if body is not None:
            return httpx.Response(status_code, json=body)
        return httpx.Response(status_code, text=text or "")

    @property
    def last_request(self) -> dict:
        return self.requests[-1]


def make_png_data_uri(width: int = 8, height: int = 6, color: str = "red") -> str:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> RestyleConfig:
    """Create a test configuration with temporary directories and a fake key."""
    return RestyleConfig(
        gateway_url="https://gateway.test/v1/chat/completions",
        gateway_api_key="test-key",
        data_dir=str(temp_dir / "data"),
        media_dir=str(temp_dir / "media"),
        max_upload_bytes=64 * 1024,
        _env_file=None,
    )


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def gateway_client(test_config: RestyleConfig, fake_gateway: FakeGateway) -> GatewayClient:
    return GatewayClient(test_config, transport=httpx.MockTransport(fake_gateway.handler))


@pytest.fixture
def editor(gateway_client: GatewayClient, test_config: RestyleConfig) -> ClothingEditor:
    return ClothingEditor(gateway_client, test_config)


@pytest.fixture
def store(test_config: RestyleConfig) -> GalleryStore:
    return GalleryStore(test_config.data_dir, test_config.media_dir)


@pytest.fixture
def png_data_uri() -> str:
    return make_png_data_uri()


@pytest.fixture
def png_factory():
    """Return the PNG data URI builder for tests that need custom sizes."""
    return make_png_data_uri


@pytest.fixture
def test_client(store: GalleryStore, editor: ClothingEditor) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to a temporary store and the fake gateway."""
    from restyle.api.main import app

    with TestClient(app) as client:
        app.state.store = store
        app.state.editor = editor
        yield client
