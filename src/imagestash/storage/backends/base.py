"""
Image Backend Interface
=======================

The storage contract every backend implements and the HTTP layer depends on.

Backends move whole image archives between a caller-supplied stream and
their medium. Identifiers are ``repository:tag`` strings (see
``imagestash.identifiers``).
"""

import logging
from abc import ABC, abstractmethod
from typing import BinaryIO, List

from ..pipe import PipeReader, PipeWriter, run_consumer, run_producer

logger = logging.getLogger(__name__)

# Default size of the chunks copied between a stream and the medium
DEFAULT_CHUNK_SIZE = 64 * 1024


class ImageBackend(ABC):
    """
    Abstract base class for image storage backends.

    Implementations provide four operations:

    - ``write(identifier, source)``: store everything read from ``source``
    - ``get(identifier, sink)``: copy the stored image into ``sink``
    - ``delete(identifier)``: remove the stored image
    - ``list()``: enumerate the addressable identifiers

    ``source`` only needs ``read(size)``; ``sink`` only needs ``write(data)``.
    Callers can swap backends without code change: how a backend keeps track
    of its identifiers is not visible through this interface.
    """

    name = "abstract"

    @abstractmethod
    def write(self, identifier: str, source: BinaryIO) -> None:
        """
        Store the image read from ``source`` under ``identifier``.

        Writing an existing identifier overwrites it.
        """
        pass

    @abstractmethod
    def get(self, identifier: str, sink: BinaryIO) -> None:
        """
        Copy the image stored under ``identifier`` into ``sink``.

        Raises:
            ImageNotFoundError: If nothing is stored under ``identifier``
                (the engine backend raises the docker SDK error instead)
        """
        pass

    @abstractmethod
    def delete(self, identifier: str) -> None:
        """Remove the image stored under ``identifier``."""
        pass

    @abstractmethod
    def list(self) -> List[str]:
        """Return the identifiers currently stored."""
        pass

    def open_reader(self, identifier: str) -> PipeReader:
        """
        Stream an image without buffering it.

        Runs ``get()`` on a worker thread feeding a pipe and returns the read
        end. Errors from ``get()`` are raised by the reader. Closing the
        reader early stops the worker.
        """
        logger.debug(f"{self.name}: opening reader for {identifier}")
        return run_producer(
            lambda writer: self.get(identifier, writer),
            name=f"{self.name}-get-{identifier}",
        )

    def open_writer(self, identifier: str) -> PipeWriter:
        """
        Store an image from a stream the caller produces.

        Runs ``write()`` on a worker thread fed by a pipe and returns the
        write end. ``close()`` waits for the write to finish and re-raises
        its error.
        """
        logger.debug(f"{self.name}: opening writer for {identifier}")
        return run_consumer(
            lambda reader: self.write(identifier, reader),
            name=f"{self.name}-write-{identifier}",
        )

    def close(self) -> None:
        """
        Close and clean up any resources.

        Default implementation does nothing. Override in backends that
        hold connections.
        """
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
