"""
Storage Layer
=============

Image storage infrastructure:
- ``ImageBackend`` contract with filesystem, container engine and GridFS
  implementations
- ``NameIndex`` in-memory identifier registry used by index-owning backends
- ``StreamPipe`` for streaming a backend copy through a worker thread

Usage:
    from imagestash.storage import FilesystemImageBackend

    backend = FilesystemImageBackend("./images")
    with backend.open_reader("redis:latest") as reader:
        for chunk in reader:
            ...
"""

from .backends import (
    EngineImageBackend,
    FilesystemImageBackend,
    GridFSImageBackend,
    ImageBackend,
    create_image_backend,
    get_image_backend,
    list_image_backends,
    register_image_backend,
    unregister_image_backend,
)
from .name_index import NameIndex
from .pipe import PipeClosedError, PipeReader, PipeWriter, StreamPipe, run_consumer, run_producer

__all__ = [
    # Backends
    "ImageBackend",
    "FilesystemImageBackend",
    "EngineImageBackend",
    "GridFSImageBackend",
    "create_image_backend",
    "get_image_backend",
    "list_image_backends",
    "register_image_backend",
    "unregister_image_backend",
    # Index
    "NameIndex",
    # Streaming
    "StreamPipe",
    "PipeReader",
    "PipeWriter",
    "PipeClosedError",
    "run_producer",
    "run_consumer",
]
