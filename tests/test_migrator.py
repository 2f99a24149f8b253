"""Tests for output migration and object storage."""

import httpx
import pytest

from app.errors import StorageUploadFailed
from app.services.migrator import OutputMigrator
from app.services.storage import ObjectStorage
from tests.fakes import FakeStorage


def provider_transport(content_type="image/png", failing=()):
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) in failing:
            return httpx.Response(404, text="gone")
        headers = {"content-type": content_type} if content_type else {}
        return httpx.Response(200, content=b"bytes-of-" + request.url.path.encode(), headers=headers)

    return httpx.MockTransport(handler)


def test_migrate_single_url():
    """Test that a provider URL is copied into storage."""
    storage = FakeStorage(url="https://platform-cdn/x.png")
    migrator = OutputMigrator(storage=storage, transport=provider_transport())

    result = migrator.migrate("https://provider/out.png", "Flux Schnell", "image")

    assert result == "https://platform-cdn/x.png"
    upload = storage.uploads[0]
    assert upload["data"] == b"bytes-of-/out.png"
    assert upload["content_type"] == "image/png"
    assert upload["key"].startswith("Flux-Schnell-")
    assert upload["key"].endswith(".png")


def test_generic_content_type_falls_back_to_media_type():
    storage = FakeStorage()
    migrator = OutputMigrator(storage=storage, transport=provider_transport("application/octet-stream"))

    migrator.migrate("https://provider/clip", "Video Gen", "video")

    assert storage.uploads[0]["content_type"] == "video/mp4"
    assert storage.uploads[0]["key"].endswith(".mp4")


def test_mesh_outputs_use_glb_extension():
    storage = FakeStorage()
    migrator = OutputMigrator(storage=storage, transport=provider_transport(None))

    migrator.migrate("https://provider/mesh", "Trellis", "3d")

    assert storage.uploads[0]["content_type"] == "model/gltf-binary"
    assert storage.uploads[0]["key"].endswith(".glb")


def test_storage_failure_keeps_provider_url():
    """Test that migration failures never fail the run."""
    migrator = OutputMigrator(storage=FakeStorage(fail=True), transport=provider_transport())

    assert migrator.migrate("https://provider/out.png", "Flux", "image") == "https://provider/out.png"


def test_list_partial_success():
    """Test that each list element falls back independently."""
    storage = FakeStorage(url="https://platform-cdn/x.png")
    migrator = OutputMigrator(
        storage=storage,
        transport=provider_transport(failing={"https://provider/b.png"}),
    )

    result = migrator.migrate(
        ["https://provider/a.png", "https://provider/b.png", "https://provider/c.png"],
        "Flux",
        "image",
    )

    assert result == ["https://platform-cdn/x.png", "https://provider/b.png", "https://platform-cdn/x.png"]
    suffixes = sorted(upload["key"].rsplit("-", 1)[1] for upload in storage.uploads)
    assert suffixes == ["0.png", "2.png"]


def test_non_url_outputs_pass_through():
    storage = FakeStorage()
    migrator = OutputMigrator(storage=storage, transport=provider_transport())

    assert migrator.migrate("a caption", "Captioner", "text") == "a caption"
    assert migrator.migrate([], "Flux", "image") == []
    assert storage.uploads == []


def test_object_storage_upload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["type"] = request.headers["x-content-type"]
        return httpx.Response(200, json={"url": "https://blob.example/outputs/k.png"})

    storage = ObjectStorage(
        api_url="https://blob.example",
        token="tok",
        folder="outputs",
        transport=httpx.MockTransport(handler),
    )

    assert storage.upload(b"png", "k.png", "image/png") == "https://blob.example/outputs/k.png"
    assert seen == {
        "url": "https://blob.example/outputs/k.png",
        "auth": "Bearer tok",
        "type": "image/png",
    }


@pytest.mark.parametrize(
    "response",
    [httpx.Response(500, text="boom"), httpx.Response(200, json={})],
)
def test_object_storage_upload_errors(response):
    storage = ObjectStorage(
        api_url="https://blob.example",
        token="tok",
        folder="outputs",
        transport=httpx.MockTransport(lambda request: response),
    )

    with pytest.raises(StorageUploadFailed):
        storage.upload(b"png", "k.png", "image/png")
