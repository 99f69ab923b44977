"""
Shared fixtures for imagestash tests.

GridFS tests run against an in-memory bucket fake by default; tests marked
with the ``mongo_url`` fixture talk to a real MongoDB and are skipped when
none is reachable. Engine tests use a mocked docker client.
"""

import itertools
import os
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from gridfs.errors import NoFile
from pymongo import MongoClient
from pymongo.errors import ServerSelectionTimeoutError


# ==================== Environment Configuration ====================


def get_mongo_url() -> str:
    """Get MongoDB connection URL from environment."""
    return os.getenv("IMAGESTASH_TEST_MONGO_URL", "mongodb://localhost:27017")


# ==================== Filesystem Fixtures ====================


@pytest.fixture
def image_root(tmp_path):
    """Provide an empty root directory for a filesystem backend."""
    root = tmp_path / "images"
    root.mkdir()
    return root


@pytest.fixture
def fs_backend(image_root):
    """Provide a filesystem backend over a fresh directory."""
    from imagestash.storage.backends.filesystem_backend import FilesystemImageBackend

    return FilesystemImageBackend(image_root)


# ==================== GridFS Fakes ====================


class FakeGridOut:
    """Stored file record, mirroring the attributes the backend reads."""

    def __init__(self, file_id, filename, data):
        self._id = file_id
        self.filename = filename
        self.data = data


class FakeGridFSStore:
    """
    In-memory stand-in for a MongoDB deployment's GridFS buckets.

    Records every client it hands out so tests can check that each one was
    closed. Set ``unreachable`` to make every bucket call fail the way
    pymongo does when no server answers, or ``failure`` to raise any other
    driver error.
    """

    def __init__(self):
        self.buckets = {}
        self.clients = []
        self.unreachable = False
        self.failure = None
        self._ids = itertools.count(1)

    def client_factory(self, url, **options):
        client = MagicMock(name="MongoClient")
        client.url = url
        client.options = options
        self.clients.append(client)
        return client

    def bucket_factory(self, database, bucket_name="fs", chunk_size_bytes=None):
        return FakeGridFSBucket(self, bucket_name)

    def files(self, bucket_name="fs"):
        return self.buckets.setdefault(bucket_name, {})

    def next_id(self):
        return next(self._ids)

    def seed(self, filename, data, bucket_name="fs"):
        file_id = self.next_id()
        self.files(bucket_name)[file_id] = FakeGridOut(file_id, filename, data)
        return file_id

    def revisions(self, filename, bucket_name="fs"):
        return [f for f in self.files(bucket_name).values() if f.filename == filename]

    @property
    def open_clients(self):
        return [c for c in self.clients if not c.close.called]


class FakeGridFSBucket:
    """The subset of ``gridfs.GridFSBucket`` used by the backend."""

    def __init__(self, store, bucket_name):
        self._store = store
        self._bucket_name = bucket_name

    def _check(self):
        if self._store.unreachable:
            raise ServerSelectionTimeoutError("localhost:27017: connection refused")
        if self._store.failure is not None:
            raise self._store.failure

    @property
    def _files(self):
        return self._store.files(self._bucket_name)

    def upload_from_stream(self, filename, source, **kwargs):
        self._check()
        chunks = []
        while True:
            chunk = source.read(1024)
            if not chunk:
                break
            chunks.append(chunk)
        file_id = self._store.next_id()
        self._files[file_id] = FakeGridOut(file_id, filename, b"".join(chunks))
        return file_id

    def find(self, filter=None):
        self._check()
        filename = (filter or {}).get("filename")
        return [
            f for f in list(self._files.values()) if filename is None or f.filename == filename
        ]

    def download_to_stream_by_name(self, filename, destination, revision=-1):
        self._check()
        matches = [f for f in self._files.values() if f.filename == filename]
        if not matches:
            raise NoFile(f"no version {revision} for filename {filename!r}")
        data = matches[revision].data
        for start in range(0, len(data), 1024):
            destination.write(data[start : start + 1024])

    def delete(self, file_id):
        self._check()
        if file_id not in self._files:
            raise NoFile(f"no file could be deleted because none matched {file_id}")
        del self._files[file_id]


@pytest.fixture
def gridfs_store(monkeypatch):
    """Patch the GridFS backend to use an in-memory bucket store."""
    from imagestash.storage.backends import gridfs_backend

    store = FakeGridFSStore()
    monkeypatch.setattr(gridfs_backend, "GridFSBucket", store.bucket_factory)
    return store


@pytest.fixture
def gridfs_backend(gridfs_store):
    """Provide a GridFS backend over the in-memory store."""
    from imagestash.storage.backends.gridfs_backend import GridFSImageBackend

    return GridFSImageBackend(
        url="mongodb://fake:27017",
        database="imagestash_test",
        client_factory=gridfs_store.client_factory,
    )


# ==================== MongoDB Fixtures ====================


@pytest.fixture(scope="session")
def mongo_available() -> bool:
    """Check if MongoDB is available."""
    client = MongoClient(get_mongo_url(), serverSelectionTimeoutMS=500)
    try:
        client.admin.command("ping")
        return True
    except Exception:
        return False
    finally:
        client.close()


@pytest.fixture
def mongo_url(mongo_available):
    """Provide a MongoDB URL with a clean test database."""
    if not mongo_available:
        pytest.skip("MongoDB not available")

    url = get_mongo_url()
    client = MongoClient(url)
    client.drop_database("imagestash_test")
    yield url
    client.drop_database("imagestash_test")
    client.close()


# ==================== Docker Fixtures ====================


def make_engine_image(*repo_tags):
    """Build an object shaped like ``docker.models.images.Image``."""
    tags = list(repo_tags) if repo_tags != (None,) else None
    return SimpleNamespace(attrs={"Id": "sha256:feed", "RepoTags": tags})


@pytest.fixture
def docker_client():
    """Provide a mocked ``docker.DockerClient``."""
    client = MagicMock(name="DockerClient")
    client.images.list.return_value = []
    client.images.load.return_value = []
    return client


@pytest.fixture
def engine_backend(docker_client):
    """Provide an engine backend around the mocked docker client."""
    from imagestash.storage.backends.engine_backend import EngineImageBackend

    return EngineImageBackend(client=docker_client)
