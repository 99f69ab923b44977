"""
Storage Backends
================

Interchangeable implementations of the ``ImageBackend`` contract:

- FilesystemImageBackend: one directory per repository, one file per tag
- EngineImageBackend: delegates to a Docker Engine daemon
- GridFSImageBackend: MongoDB GridFS bucket, one file per identifier

Registry APIs:
- register_image_backend(), unregister_image_backend()
- get_image_backend(), list_image_backends()
- create_image_backend(config): pick the configured backend at startup

Usage:
    from imagestash.storage.backends import get_image_backend

    backend = get_image_backend("filesystem", root_dir="./images")
    with open("redis.tar", "rb") as f:
        backend.write("redis:latest", f)
"""

import logging
from typing import Any, Dict, List, Type

from ...config import ImageStashConfig
from ...error_handling import ImageStoreConfigurationError
from .base import ImageBackend
from .engine_backend import EngineImageBackend
from .filesystem_backend import FilesystemImageBackend
from .gridfs_backend import GridFSImageBackend

logger = logging.getLogger(__name__)


# =============================================================================
# Image Backend Registry
# =============================================================================

_image_backend_registry: Dict[str, Type[ImageBackend]] = {}
_builtin_image_backends = {"filesystem", "engine", "gridfs"}


def _initialize_builtin_image_backends():
    """Initialize registry with built-in backends."""
    _image_backend_registry["filesystem"] = FilesystemImageBackend
    _image_backend_registry["engine"] = EngineImageBackend
    _image_backend_registry["gridfs"] = GridFSImageBackend


_initialize_builtin_image_backends()


def register_image_backend(
    name: str, backend_class: Type[ImageBackend], force: bool = False
) -> None:
    """
    Register a custom image backend.

    Args:
        name: Unique name for the backend (e.g., "s3")
        backend_class: Class implementing the ImageBackend interface
        force: If True, overwrite an existing registration

    Raises:
        ValueError: If name already registered and force=False
        ValueError: If backend_class doesn't inherit from ImageBackend
    """
    if not isinstance(backend_class, type):
        raise ValueError(f"backend_class must be a class, got {type(backend_class)}")

    if not issubclass(backend_class, ImageBackend):
        raise ValueError(
            f"Backend class {backend_class.__name__} must inherit from ImageBackend"
        )

    if name in _image_backend_registry and not force:
        raise ValueError(
            f"Image backend '{name}' already registered. "
            f"Use force=True to overwrite or unregister_image_backend() first."
        )

    _image_backend_registry[name] = backend_class
    logger.info(f"Registered image backend '{name}' ({backend_class.__name__})")


def unregister_image_backend(name: str) -> bool:
    """
    Unregister an image backend.

    Returns:
        True if backend was unregistered, False if not found
    """
    if name in _image_backend_registry:
        del _image_backend_registry[name]
        logger.info(f"Unregistered image backend '{name}'")
        return True

    logger.warning(f"Image backend '{name}' not found for unregistration")
    return False


def get_image_backend(name: str, **options) -> ImageBackend:
    """
    Get an image backend instance by name.

    Args:
        name: Name of the registered backend
        **options: Backend-specific constructor options

    Raises:
        ValueError: If backend name not registered or options are rejected

    Example:
        >>> backend = get_image_backend("gridfs", url="mongodb://db:27017", database="images")
    """
    if name not in _image_backend_registry:
        available = list(_image_backend_registry.keys())
        raise ValueError(f"Unknown image backend: '{name}'. Available backends: {available}")

    backend_class = _image_backend_registry[name]

    try:
        return backend_class(**options)
    except TypeError as e:
        raise ValueError(f"Failed to create image backend '{name}' with options {options}: {e}")


def list_image_backends() -> List[Dict[str, Any]]:
    """
    List all registered image backends, built-ins first.

    Returns:
        List of dicts with ``name``, ``class`` and ``is_builtin`` keys
    """
    result = []

    for name in sorted(_builtin_image_backends):
        if name in _image_backend_registry:
            result.append(
                {
                    "name": name,
                    "class": _image_backend_registry[name].__name__,
                    "is_builtin": True,
                }
            )

    for name in sorted(_image_backend_registry.keys()):
        if name not in _builtin_image_backends:
            result.append(
                {
                    "name": name,
                    "class": _image_backend_registry[name].__name__,
                    "is_builtin": False,
                }
            )

    return result


def _builtin_backend_options(config: ImageStashConfig) -> Dict[str, Any]:
    """Constructor options a built-in backend takes from its config section."""
    if config.backend == "filesystem":
        return {
            "root_dir": config.filesystem.root_dir,
            "chunk_size": config.filesystem.chunk_size,
        }
    if config.backend == "engine":
        return {
            "base_url": config.engine.base_url,
            "timeout": config.engine.timeout,
        }
    if config.backend == "gridfs":
        store = config.document_store
        return {
            "url": store.url,
            "database": store.database,
            "bucket_name": store.bucket_name,
            "chunk_size_bytes": store.chunk_size_bytes,
            "server_selection_timeout_ms": store.server_selection_timeout_ms,
        }
    return {}


def create_image_backend(config: ImageStashConfig) -> ImageBackend:
    """
    Instantiate the backend named by ``config.backend``.

    Any registered backend can be selected. Built-in backends take their
    options from their config section; ``config.backend_options`` is passed
    to the constructor on top of those.

    Raises:
        ImageStoreConfigurationError: If the backend is not registered or
            rejects its options
    """
    if config.backend not in _image_backend_registry:
        raise ImageStoreConfigurationError(
            f"Unknown image backend: '{config.backend}'. "
            f"Available backends: {list(_image_backend_registry.keys())}",
            {"backend": config.backend},
        )

    options = _builtin_backend_options(config) if config.backend in _builtin_image_backends else {}
    options.update(config.backend_options)

    logger.info(f"Creating '{config.backend}' image backend")
    try:
        return get_image_backend(config.backend, **options)
    except ValueError as e:
        raise ImageStoreConfigurationError(str(e), {"backend": config.backend}) from e


__all__ = [
    # Base class
    "ImageBackend",
    # Built-in implementations
    "FilesystemImageBackend",
    "EngineImageBackend",
    "GridFSImageBackend",
    # Registry functions
    "register_image_backend",
    "unregister_image_backend",
    "get_image_backend",
    "list_image_backends",
    "create_image_backend",
]
