"""
Helpers for moving images between backends and files.
"""

import logging
from pathlib import Path
from typing import Union

from .error_handling import StorageIOError
from .storage.backends.base import ImageBackend

logger = logging.getLogger(__name__)


def mirror_image(source: ImageBackend, target: ImageBackend, identifier: str) -> None:
    """
    Copy one image from ``source`` to ``target``.

    The archive is streamed through a pipe, so memory use stays bounded by
    one chunk whatever the image size. Typical use is exporting an image
    from a local engine into a persistent store:

        mirror_image(EngineImageBackend(), FilesystemImageBackend("./images"), "redis:latest")
    """
    logger.info(f"Mirroring {identifier} from {source.name} to {target.name}")
    with source.open_reader(identifier) as reader:
        target.write(identifier, reader)


def load_archive(backend: ImageBackend, path: Union[str, Path], identifier: str) -> None:
    """Store the image archive at ``path`` under ``identifier``."""
    path = Path(path)
    try:
        f = open(path, "rb")
    except OSError as e:
        raise StorageIOError(
            f"Cannot open archive {path}: {e}", {"path": str(path), "identifier": identifier}
        ) from e

    with f:
        backend.write(identifier, f)
    logger.info(f"Loaded archive {path} into {backend.name} as {identifier}")
