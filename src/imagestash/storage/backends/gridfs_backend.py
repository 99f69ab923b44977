"""
GridFS Image Backend
====================

Stores each image as a chunked file in a MongoDB GridFS bucket, named by its
full identifier.

Every operation opens its own ``MongoClient`` and closes it before returning,
whether the operation succeeded or not; clients are never shared between
calls.

Usage:
    from imagestash.storage.backends import GridFSImageBackend

    backend = GridFSImageBackend(
        url="mongodb://mongo.internal:27017",
        database="images",
        bucket_name="fs",
    )
"""

import logging
from contextlib import contextmanager
from typing import BinaryIO, Callable, Iterator, List, Optional

from gridfs import GridFSBucket
from gridfs.errors import NoFile
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from ...error_handling import (
    BackendConnectionError,
    DuplicateIdentifierError,
    ImageNotFoundError,
    StorageIOError,
    storage_operation_context,
)
from ..name_index import NameIndex
from .base import ImageBackend

logger = logging.getLogger(__name__)

# GridFS default chunk size (255 KiB)
DEFAULT_GRIDFS_CHUNK_SIZE = 255 * 1024


class GridFSImageBackend(ImageBackend):
    """
    MongoDB GridFS image storage backend.

    The name index is seeded at construction from the bucket's file records.
    ``list()`` serves the index without querying MongoDB.

    Writing an identifier that already exists uploads a new revision and then
    deletes every older revision, so exactly one file per identifier remains.
    A failed upload leaves the previous revision in place.

    Driver failures are reported as ``BackendConnectionError`` or
    ``StorageIOError``. Errors raised by the caller's ``source`` or ``sink``
    propagate unchanged.

    Attributes:
        url: MongoDB connection URL
        database: Database holding the bucket
        bucket_name: GridFS bucket (collection prefix), ``fs`` by default
    """

    name = "gridfs"

    def __init__(
        self,
        url: str = "mongodb://localhost:27017",
        database: str = "imagestash",
        bucket_name: str = "fs",
        chunk_size_bytes: int = DEFAULT_GRIDFS_CHUNK_SIZE,
        server_selection_timeout_ms: int = 5000,
        client_factory: Optional[Callable[..., MongoClient]] = None,
    ):
        """
        Initialize GridFS image backend and load the existing image names.

        Args:
            url: MongoDB connection URL
            database: Database name
            bucket_name: GridFS bucket name
            chunk_size_bytes: GridFS chunk size for new uploads
            server_selection_timeout_ms: How long to wait for a reachable server
            client_factory: Callable building a client from ``url`` and keyword
                options; defaults to ``pymongo.MongoClient``

        Raises:
            BackendConnectionError: If MongoDB cannot be reached
        """
        self.url = url
        self.database = database
        self.bucket_name = bucket_name
        self.chunk_size_bytes = chunk_size_bytes
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self._client_factory = client_factory or MongoClient

        self._index = NameIndex(self._scan_image_names())

        logger.info(
            f"GridFSImageBackend initialized: database={database}, "
            f"bucket={bucket_name} ({len(self._index)} images)"
        )

    @contextmanager
    def _open_bucket(self, operation: str, identifier: Optional[str] = None) -> Iterator[GridFSBucket]:
        """Open a client and bucket for one operation; always close the client."""
        context = {"operation": operation, "database": self.database, "bucket": self.bucket_name}
        if identifier is not None:
            context["identifier"] = identifier

        client = self._client_factory(
            self.url, serverSelectionTimeoutMS=self.server_selection_timeout_ms
        )
        try:
            yield GridFSBucket(
                client[self.database],
                bucket_name=self.bucket_name,
                chunk_size_bytes=self.chunk_size_bytes,
            )
        except ConnectionFailure as e:
            raise BackendConnectionError(f"Cannot reach MongoDB at {self.url}: {e}", context) from e
        except NoFile:
            raise
        except PyMongoError as e:
            raise StorageIOError(f"GridFS {operation} failed: {e}", context) from e
        finally:
            client.close()

    def write(self, identifier: str, source: BinaryIO) -> None:
        with storage_operation_context("write", backend=self.name, identifier=identifier):
            with self._open_bucket("write", identifier) as bucket:
                file_id = bucket.upload_from_stream(identifier, source)

                stale = [
                    grid_out._id
                    for grid_out in bucket.find({"filename": identifier})
                    if grid_out._id != file_id
                ]
                for stale_id in stale:
                    bucket.delete(stale_id)

            if stale:
                logger.debug(f"Replaced {len(stale)} older revision(s) of {identifier}")

            try:
                self._index.add(identifier)
            except DuplicateIdentifierError:
                logger.debug(f"Overwrote existing image {identifier}")

    def get(self, identifier: str, sink: BinaryIO) -> None:
        with storage_operation_context("get", backend=self.name, identifier=identifier):
            try:
                with self._open_bucket("get", identifier) as bucket:
                    bucket.download_to_stream_by_name(identifier, sink)
            except NoFile as e:
                raise ImageNotFoundError(
                    f"Image not found: {identifier}", {"identifier": identifier}
                ) from e

    def delete(self, identifier: str) -> None:
        with storage_operation_context("delete", backend=self.name, identifier=identifier):
            try:
                with self._open_bucket("delete", identifier) as bucket:
                    file_ids = [
                        grid_out._id for grid_out in bucket.find({"filename": identifier})
                    ]
                    if not file_ids:
                        raise NoFile(f"no file named {identifier}")
                    for file_id in file_ids:
                        bucket.delete(file_id)
            except NoFile as e:
                raise ImageNotFoundError(
                    f"Image not found: {identifier}", {"identifier": identifier}
                ) from e

            try:
                self._index.remove(identifier)
            except ImageNotFoundError:
                logger.warning(f"Deleted image {identifier} was missing from the index")

    def list(self) -> List[str]:
        return self._index.names()

    def rescan(self) -> None:
        """
        Rebuild the name index from the bucket's file records.

        The current index stays in place if MongoDB cannot be read.
        """
        self._index = NameIndex(self._scan_image_names())
        logger.info(f"Rescanned GridFS bucket {self.bucket_name}: {len(self._index)} images")

    def _scan_image_names(self) -> List[str]:
        with self._open_bucket("load") as bucket:
            # several revisions of one identifier collapse to one name
            return list(dict.fromkeys(grid_out.filename for grid_out in bucket.find({})))
