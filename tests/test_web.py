"""
Tests for the Flask application built by ``create_app``.
"""

import io

import docker.errors
import pytest

from imagestash.config import ImageStashConfig
from imagestash.storage.backends.filesystem_backend import FilesystemImageBackend
from imagestash.web import create_app

from conftest import make_engine_image


@pytest.fixture
def app(fs_backend):
    app = create_app(fs_backend)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


class TestListRoute:
    def test_empty(self, client):
        response = client.get("/image/list")

        assert response.status_code == 200
        assert response.get_json() == []

    def test_lists_stored_images(self, client, fs_backend):
        fs_backend.write("redis:latest", io.BytesIO(b"r"))
        fs_backend.write("app:v1", io.BytesIO(b"a"))

        response = client.get("/image/list")

        assert response.is_json
        assert response.get_json() == ["redis:latest", "app:v1"]


class TestSaveAndGet:
    def test_save_then_get(self, client, fs_backend, image_root):
        payload = b"\x00tar archive bytes" * 1000

        response = client.post("/image/save/myapp/v1", data=payload)

        assert response.status_code == 200
        assert response.get_data(as_text=True) == "save image successfully"
        assert (image_root / "myapp" / "v1").read_bytes() == payload
        assert fs_backend.list() == ["myapp:v1"]

        response = client.get("/image/get/myapp:v1")

        assert response.status_code == 200
        assert response.mimetype == "application/x-tar"
        assert response.data == payload

    def test_get_streams_large_image(self, client, fs_backend):
        payload = bytes(range(256)) * 1024  # several pipe chunks
        fs_backend.write("big:v1", io.BytesIO(payload))

        response = client.get("/image/get/big:v1")

        assert response.data == payload

    def test_get_empty_image(self, client, fs_backend):
        fs_backend.write("empty:v1", io.BytesIO(b""))

        response = client.get("/image/get/empty:v1")

        assert response.status_code == 200
        assert response.data == b""

    def test_get_untagged_identifier(self, client, fs_backend):
        fs_backend.write("redis:latest", io.BytesIO(b"r"))

        response = client.get("/image/get/redis")

        assert response.data == b"r"

    def test_save_overwrites(self, client, fs_backend):
        client.post("/image/save/app/v1", data=b"old")
        client.post("/image/save/app/v1", data=b"new")

        assert client.get("/image/get/app:v1").data == b"new"
        assert client.get("/image/list").get_json() == ["app:v1"]


class TestDeleteRoute:
    def test_delete(self, client, fs_backend):
        fs_backend.write("app:v1", io.BytesIO(b"x"))

        response = client.delete("/image/delete/app:v1")

        assert response.status_code == 200
        assert response.get_data(as_text=True) == "delete image successfully"
        assert client.get("/image/list").get_json() == []

    def test_delete_missing(self, client):
        response = client.delete("/image/delete/ghost:v1")

        assert response.status_code == 404
        assert "ghost:v1" in response.get_json()["error"]


class TestErrorMapping:
    def test_get_missing_is_404(self, client):
        response = client.get("/image/get/ghost:v1")

        assert response.status_code == 404
        assert response.is_json
        assert "ghost:v1" in response.get_json()["error"]

    def test_invalid_identifier_is_400(self, client):
        response = client.get("/image/get/..:v1")

        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_unreachable_store_is_503(self, gridfs_backend, gridfs_store):
        client = create_app(gridfs_backend).test_client()
        gridfs_store.unreachable = True

        response = client.get("/image/get/app:v1")

        assert response.status_code == 503

    def test_storage_failure_is_500(self, client, fs_backend, image_root):
        # a file where the repository directory should be
        (image_root / "blocked").write_bytes(b"x")

        response = client.post("/image/save/blocked/v1", data=b"payload")

        assert response.status_code == 500
        assert "blocked:v1" in response.get_json()["error"]


class TestEngineBackedApp:
    @pytest.fixture
    def client(self, engine_backend):
        return create_app(engine_backend).test_client()

    def test_list(self, client, docker_client):
        docker_client.images.list.return_value = [
            make_engine_image("<none>:<none>"),
            make_engine_image("redis:latest"),
        ]

        assert client.get("/image/list").get_json() == ["redis:latest"]

    def test_get_streams_export(self, client, docker_client):
        docker_client.api.get_image.return_value = iter([b"layer-1", b"layer-2"])

        response = client.get("/image/get/redis:latest")

        assert response.status_code == 200
        assert response.data == b"layer-1layer-2"

    def test_missing_image_is_404(self, client, docker_client):
        docker_client.api.get_image.side_effect = docker.errors.ImageNotFound(
            "No such image: ghost:v1"
        )

        response = client.get("/image/get/ghost:v1")

        assert response.status_code == 404

    def test_engine_failure_is_500(self, client, docker_client):
        docker_client.images.remove.side_effect = docker.errors.APIError(
            "conflict: image is being used by running container"
        )

        response = client.delete("/image/delete/redis:latest")

        assert response.status_code == 500

    def test_save_loads_into_engine(self, client, docker_client):
        received = []
        docker_client.images.load.side_effect = lambda source: received.append(source.read()) or []

        response = client.post("/image/save/redis/latest", data=b"archive")

        assert response.status_code == 200
        assert received == [b"archive"]


class TestAppFactory:
    def test_apps_are_independent(self, tmp_path):
        first = create_app(FilesystemImageBackend(tmp_path / "one")).test_client()
        second = create_app(FilesystemImageBackend(tmp_path / "two")).test_client()

        first.post("/image/save/app/v1", data=b"x")

        assert first.get("/image/list").get_json() == ["app:v1"]
        assert second.get("/image/list").get_json() == []

    def test_config_attached(self, fs_backend):
        config = ImageStashConfig()

        app = create_app(fs_backend, config)

        assert app.config["IMAGESTASH"] is config
        assert app.extensions["imagestash.storage"] is fs_backend
