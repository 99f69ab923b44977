"""
Filesystem Image Backend
========================

Stores each image as a plain file: one directory per repository, one file
per tag, file content is the raw archive.

    root/
        redis/
            latest
            3.2
        myapp/
            v1
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, List, Union

from ...error_handling import (
    DuplicateIdentifierError,
    ImageNotFoundError,
    InvalidIdentifierError,
    StorageIOError,
    storage_operation_context,
    with_error_handling,
)
from ...identifiers import format_identifier, parse_identifier
from ..name_index import NameIndex
from .base import DEFAULT_CHUNK_SIZE, ImageBackend

logger = logging.getLogger(__name__)


class FilesystemImageBackend(ImageBackend):
    """
    Filesystem-based image storage backend.

    The name index is seeded from a two-level scan of ``root_dir`` at
    construction and kept up to date by ``write()`` and ``delete()``;
    ``list()`` never touches the disk.

    Archives are written to a temporary file in ``root_dir`` and moved into
    place once complete, so a failed write never replaces a stored image or
    leaves a partial one behind. Errors raised by the caller's ``source`` or
    ``sink`` propagate unchanged; only failures of the disk side are reported
    as ``StorageIOError``.

    Attributes:
        root_dir: Directory holding one subdirectory per repository
        chunk_size: Size of the chunks copied to and from disk
    """

    name = "filesystem"

    def __init__(self, root_dir: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize filesystem image backend.

        Args:
            root_dir: Directory where images will be stored (created if missing)
            chunk_size: Copy chunk size in bytes
        """
        self.root_dir = Path(root_dir)
        self.chunk_size = chunk_size
        self.root_dir.mkdir(parents=True, exist_ok=True)

        self._index = NameIndex(self._scan_image_names())

        logger.info(
            f"FilesystemImageBackend initialized at {self.root_dir} "
            f"({len(self._index)} images)"
        )

    def write(self, identifier: str, source: BinaryIO) -> None:
        repository_dir, image_path = self._image_path(identifier)
        canonical = format_identifier(repository_dir.name, image_path.name)
        context = {"identifier": canonical, "operation": "write", "path": str(image_path)}

        with storage_operation_context("write", backend=self.name, identifier=canonical):
            try:
                temp = tempfile.NamedTemporaryFile(
                    dir=self.root_dir, prefix=".upload-", suffix=".tmp", delete=False
                )
            except OSError as e:
                raise StorageIOError(f"Failed to write image {canonical}: {e}", context) from e

            temp_path = Path(temp.name)
            size = 0
            try:
                with temp:
                    while True:
                        chunk = source.read(self.chunk_size)
                        if not chunk:
                            break
                        try:
                            temp.write(chunk)
                        except OSError as e:
                            raise StorageIOError(
                                f"Failed to write image {canonical}: {e}", context
                            ) from e
                        size += len(chunk)
                    try:
                        temp.flush()
                    except OSError as e:
                        raise StorageIOError(
                            f"Failed to write image {canonical}: {e}", context
                        ) from e

                try:
                    repository_dir.mkdir(parents=True, exist_ok=True)
                    temp_path.replace(image_path)
                except OSError as e:
                    raise StorageIOError(
                        f"Failed to write image {canonical}: {e}", context
                    ) from e
            except Exception:
                if temp_path.exists():
                    temp_path.unlink()
                raise

            try:
                self._index.add(canonical)
            except DuplicateIdentifierError:
                logger.debug(f"Overwrote existing image {canonical}")

            logger.debug(f"Wrote image {canonical} ({size} bytes) to {image_path}")

    def get(self, identifier: str, sink: BinaryIO) -> None:
        _, image_path = self._image_path(identifier)
        context = {"identifier": identifier, "operation": "get", "path": str(image_path)}

        with storage_operation_context("get", backend=self.name, identifier=identifier):
            try:
                f = open(image_path, "rb")
            except (FileNotFoundError, NotADirectoryError, IsADirectoryError) as e:
                raise ImageNotFoundError(
                    f"Image not found: {identifier}",
                    {"identifier": identifier, "path": str(image_path)},
                ) from e
            except OSError as e:
                raise StorageIOError(f"Failed to open image {identifier}: {e}", context) from e

            with f:
                while True:
                    try:
                        chunk = f.read(self.chunk_size)
                    except OSError as e:
                        raise StorageIOError(
                            f"Failed to read image {identifier}: {e}", context
                        ) from e
                    if not chunk:
                        break
                    sink.write(chunk)

    def delete(self, identifier: str) -> None:
        repository_dir, image_path = self._image_path(identifier)
        canonical = format_identifier(repository_dir.name, image_path.name)

        with storage_operation_context("delete", backend=self.name, identifier=canonical):
            try:
                image_path.unlink()
            except (FileNotFoundError, NotADirectoryError, IsADirectoryError) as e:
                raise ImageNotFoundError(
                    f"Image not found: {canonical}",
                    {"identifier": canonical, "path": str(image_path)},
                ) from e
            except OSError as e:
                raise StorageIOError(
                    f"Failed to delete image {canonical}: {e}",
                    {"identifier": canonical, "operation": "delete"},
                ) from e

            try:
                self._index.remove(canonical)
            except ImageNotFoundError:
                logger.warning(f"Deleted image {canonical} was missing from the index")

            logger.debug(f"Deleted image: {image_path}")

    def list(self) -> List[str]:
        return self._index.names()

    def rescan(self) -> None:
        """
        Rebuild the name index from the directory tree.

        The current index stays in place if the scan fails.
        """
        self._index = NameIndex(self._scan_image_names())
        logger.info(f"Rescanned {self.root_dir}: {len(self._index)} images")

    @with_error_handling(StorageIOError, context={"backend": "filesystem", "operation": "scan"})
    def _scan_image_names(self) -> List[str]:
        names = []
        for repository_dir in sorted(self.root_dir.iterdir()):
            if not repository_dir.is_dir():
                continue
            try:
                tag_files = sorted(repository_dir.iterdir())
            except OSError as e:
                logger.warning(f"Skipping unreadable repository {repository_dir}: {e}")
                continue

            for tag_file in tag_files:
                if tag_file.is_file():
                    names.append(format_identifier(repository_dir.name, tag_file.name))
        return names

    def _image_path(self, identifier: str):
        """Map ``identifier`` to ``(repository_dir, tag_file)`` below the root."""
        repository, tag = parse_identifier(identifier)
        for part in (repository, tag):
            if not _is_path_component(part):
                raise InvalidIdentifierError(
                    f"Identifier {identifier!r} cannot be stored on the filesystem",
                    {"identifier": identifier, "part": part},
                )

        repository_dir = self.root_dir / repository
        return repository_dir, repository_dir / tag


def _is_path_component(part: str) -> bool:
    if not part or part in (".", ".."):
        return False
    separators = {"/", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    return not any(sep in part for sep in separators) and "\0" not in part
