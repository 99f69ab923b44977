"""
Container Engine Image Backend
==============================

Delegates storage to a Docker Engine daemon: writes load an image archive
into the daemon, reads export one, and listings come straight from the
daemon's image list. Nothing is indexed locally.

Usage:
    from imagestash.storage.backends import EngineImageBackend

    # Local daemon, configured from DOCKER_HOST & co.
    backend = EngineImageBackend()

    # Remote daemon
    backend = EngineImageBackend(base_url="tcp://build-host:2375", timeout=300)
"""

import logging
from typing import Any, BinaryIO, List, Optional

import docker

from .base import ImageBackend

logger = logging.getLogger(__name__)

# Placeholder the engine reports for untagged (dangling) images
UNTAGGED = "<none>"


def is_untagged_alias(alias: str) -> bool:
    """True for ``<none>``, ``<none>:<none>`` and ``repo:<none>`` aliases."""
    return (
        alias == UNTAGGED
        or alias.startswith(UNTAGGED + ":")
        or alias.endswith(":" + UNTAGGED)
    )


class EngineImageBackend(ImageBackend):
    """
    Image backend forwarding every operation to a container engine.

    Errors raised by the docker SDK (``docker.errors.ImageNotFound``,
    ``docker.errors.APIError``, connection errors) reach the caller
    unmodified; this backend does no validation and no retries.

    Attributes:
        client: ``docker.DockerClient`` used for every call
    """

    name = "engine"

    def __init__(
        self,
        client: Optional[Any] = None,
        base_url: Optional[str] = None,
        timeout: int = 120,
    ):
        """
        Initialize engine image backend.

        Args:
            client: Existing ``docker.DockerClient``; the backend will not close it
            base_url: Daemon URL (e.g. ``unix:///var/run/docker.sock``); when
                omitted the client is configured from the environment
            timeout: API call timeout in seconds
        """
        self._owns_client = client is None
        if client is not None:
            self.client = client
        elif base_url:
            self.client = docker.DockerClient(base_url=base_url, timeout=timeout)
        else:
            self.client = docker.from_env(timeout=timeout)

        logger.info(f"EngineImageBackend initialized (base_url={base_url or 'environment'})")

    def write(self, identifier: str, source: BinaryIO) -> None:
        # The archive carries its own tags; identifier is informational
        logger.debug(f"Loading image archive for {identifier} into the engine")
        images = self.client.images.load(source)
        logger.debug(f"Engine loaded {len(images)} image(s) for {identifier}")

    def get(self, identifier: str, sink: BinaryIO) -> None:
        logger.debug(f"Exporting image {identifier} from the engine")
        for chunk in self.client.api.get_image(identifier):
            sink.write(chunk)

    def delete(self, identifier: str) -> None:
        logger.debug(f"Removing image {identifier} from the engine")
        self.client.images.remove(identifier)

    def list(self) -> List[str]:
        result = []
        for image in self.client.images.list():
            for alias in image.attrs.get("RepoTags") or []:
                if is_untagged_alias(alias):
                    continue
                result.append(alias)
        return result

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
