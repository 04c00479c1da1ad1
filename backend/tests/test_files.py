"""Tests for image storage and the download endpoint."""
import pytest
from fastapi.testclient import TestClient

from together.errors import BadRequest, PayloadTooLarge
from together.files.service import ImageStorageService
from together.main import app

from conftest import register


client = TestClient(app)


@pytest.fixture
def storage(tmp_path):
    svc = ImageStorageService(upload_dir=str(tmp_path / "images"), db_path=":memory:", max_bytes=16)
    yield svc
    svc._connection.close()


def test_save_and_locate_image(storage):
    metadata = storage.save_image("user-1", "user-1", "Avatar.PNG", b"png-bytes", "image/png")
    assert metadata.stored_filename == f"{metadata.id}.png"
    assert metadata.size_bytes == 9

    path = storage.get_image_path(metadata.id)
    assert path.read_bytes() == b"png-bytes"
    assert [m.id for m in storage.get_owner_images("user-1")] == [metadata.id]


def test_rejects_non_images(storage):
    with pytest.raises(BadRequest):
        storage.save_image("user-1", "user-1", "notes.txt", b"text", "text/plain")


def test_rejects_oversized_images(storage):
    with pytest.raises(PayloadTooLarge):
        storage.save_image("user-1", "user-1", "big.png", b"x" * 17, "image/png")


def test_missing_file_on_disk(storage):
    metadata = storage.save_image("user-1", "user-1", "a.png", b"abc", "image/png")
    storage.get_image_path(metadata.id).unlink()
    assert storage.get_image_path(metadata.id) is None


def test_download_unknown_image():
    resp = client.get("/files/missing")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "File not found"}


def test_upload_too_large_is_413():
    ImageStorageService.reset_instance()
    ImageStorageService._instance = ImageStorageService(max_bytes=4)
    alice = register(client, "Alice")

    resp = client.post(
        "/users/upload-profile-image",
        files={"profileImage": ("me.png", b"too-large", "image/png")},
        headers=alice["headers"],
    )
    assert resp.status_code == 413
    assert resp.json()["success"] is False
