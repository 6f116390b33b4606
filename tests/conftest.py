"""Pytest configuration and shared fixtures."""

import json
import zipfile
from pathlib import Path
from typing import Callable
from urllib.parse import parse_qs

import httpx
import pytest
from PIL import Image

from recorder.api.client import ApiClient
from recorder.api.transport import HttpxTransport
from recorder.models.config import Credential, CredentialSource, RecorderConfig
from recorder.models.screenshot import ScreenshotDescriptor
from recorder.sources.repo_status import RepoStatus

API_URL = "https://api.test.local"
UPLOAD_HOST = "uploads.test.local"


# ============================================================================
# Fake Screenshot Service
# ============================================================================


class FakeServer:
    """In-memory stand-in for the screenshot service and its upload bucket.

    Images are keyed by hash: registering a known hash returns its id with no
    upload URL, an unknown hash gets a fresh id and a pre-signed URL. Content
    only becomes known once it has been PUT.
    """

    def __init__(self):
        self.known: dict[str, str] = {}
        self.pending: dict[str, str] = {}  # image id -> hash awaiting upload
        self.uploads: dict[str, bytes] = {}
        self.registrations: list[dict[str, str]] = []
        self.runs: list[dict[str, str]] = []
        self.puts: list[str] = []
        self.put_status = 200
        self.run_status = 200
        self.fail_names: set[str] = set()
        self.connect_failures = 0

    @staticmethod
    def _form(request: httpx.Request) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise httpx.ConnectError("connection refused", request=request)

        if request.method == "POST" and request.url.path == "/api/screenshot":
            form = self._form(request)
            self.registrations.append(form)
            if form["name"] in self.fail_names:
                return httpx.Response(500, json={"success": False, "error": "boom"})
            content_hash = form["hash"]
            if content_hash in self.known:
                return httpx.Response(
                    200, json={"success": True, "response": {"id": self.known[content_hash]}}
                )
            image_id = f"img-{len(self.registrations)}"
            self.pending[image_id] = content_hash
            return httpx.Response(200, json={
                "success": True,
                "response": {
                    "id": image_id,
                    "uploadUrl": f"https://{UPLOAD_HOST}/{image_id}?signature=abc",
                },
            })

        if request.method == "PUT" and request.url.host == UPLOAD_HOST:
            image_id = request.url.path.lstrip("/")
            self.puts.append(image_id)
            if self.put_status != 200:
                return httpx.Response(self.put_status)
            self.uploads[image_id] = request.content
            self.known[self.pending.pop(image_id)] = image_id
            return httpx.Response(200)

        if request.method == "POST" and request.url.path == "/api/run":
            form = self._form(request)
            self.runs.append(form)
            if self.run_status != 200:
                return httpx.Response(self.run_status, json={"success": False, "error": "nope"})
            return httpx.Response(200, json={"success": True, "response": {"id": len(self.runs)}})

        return httpx.Response(404)

    def transport(self) -> HttpxTransport:
        return HttpxTransport(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def recorder_config() -> RecorderConfig:
    """Create a test recorder configuration."""
    return RecorderConfig(api_url=API_URL, max_workers=2, branch="main", github_repo="acme/app")


@pytest.fixture
def credential() -> Credential:
    return Credential(api_key="key-123", api_secret="secret-456")


@pytest.fixture
def credential_source() -> CredentialSource:
    return CredentialSource(api_key="key-123", api_secret="secret-456")


@pytest.fixture
def api_client(recorder_config, credential, server) -> ApiClient:
    return ApiClient(recorder_config, credential, server.transport())


class StaticRepoStatus:
    def __init__(self, status: RepoStatus | None):
        self.status = status

    def resolve(self, start_dir="."):
        return self.status


@pytest.fixture
def repo_status() -> StaticRepoStatus:
    return StaticRepoStatus(RepoStatus(commit="abc123", is_clean=True))


# ============================================================================
# Image Fixtures
# ============================================================================


def solid_tile(width: int, height: int, color=(255, 0, 0), mode: str = "RGB") -> Image.Image:
    """Create a tile with a distinct pixel in its corner so placement is checkable."""
    img = Image.new(mode, (width, height), color)
    if mode == "RGB":
        img.putpixel((0, 0), (width % 256, height % 256, 7))
    return img


@pytest.fixture
def tile_factory() -> Callable[..., Image.Image]:
    return solid_tile


def write_png(path: Path, image: Image.Image) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path, format="PNG")
    return path


def write_metadata(path: Path, descriptors: list[ScreenshotDescriptor]) -> Path:
    parts = ["<screenshots>"]
    for d in descriptors:
        parts.append(
            "<screenshot>"
            f"<name>{d.name}</name>"
            f"<description>{d.description}</description>"
            f"<tile_width>{d.tile_width}</tile_width>"
            f"<tile_height>{d.tile_height}</tile_height>"
            "</screenshot>"
        )
    parts.append("</screenshots>")
    path.write_text("".join(parts))
    return path


@pytest.fixture
def screenshot_dir(tmp_path: Path) -> Path:
    """A directory with a 2x2 tiled screenshot, a single tile one and metadata.xml.

    ``login`` is 2 columns by 2 rows with column widths [30, 20] and row
    heights [10, 15]; ``home`` is a single 40x25 tile.
    """
    base = tmp_path / "screenshots"
    colors = {(0, 0): (255, 0, 0), (0, 1): (0, 255, 0), (1, 0): (0, 0, 255), (1, 1): (9, 9, 9)}
    widths, heights = [30, 20], [10, 15]
    for (row, col), color in colors.items():
        name = "login.png" if (row, col) == (0, 0) else f"login_{col}_{row}.png"
        write_png(base / name, solid_tile(widths[col], heights[row], color))
    write_png(base / "home.png", solid_tile(40, 25, (100, 150, 200)))
    write_metadata(base / "metadata.xml", [
        ScreenshotDescriptor(name="login", tile_width=2, tile_height=2, description="Login"),
        ScreenshotDescriptor(name="home"),
    ])
    return base


@pytest.fixture
def screenshot_zip(screenshot_dir: Path, tmp_path: Path) -> Path:
    """The same screenshots packed into bundle.zip."""
    bundle = tmp_path / "bundle.zip"
    with zipfile.ZipFile(bundle, "w") as zf:
        for path in sorted(screenshot_dir.iterdir()):
            zf.write(path, arcname=path.name)
    return bundle


@pytest.fixture
def credentials_file(tmp_path: Path) -> Path:
    path = tmp_path / ".screenshotbot"
    path.write_text(json.dumps({"apiKey": "file-key", "apiSecretKey": "file-secret"}))
    return path
