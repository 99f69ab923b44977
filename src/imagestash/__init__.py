"""
imagestash - Container image repository with pluggable storage backends.

Stores, retrieves, lists and deletes container image archives named
``repository:tag`` on one of three interchangeable backends:

- Filesystem: one directory per repository, one file per tag
- Container engine: delegates to a Docker daemon
- GridFS: MongoDB blob store

Quick Start:
    >>> from imagestash import FilesystemImageBackend
    >>>
    >>> backend = FilesystemImageBackend("/srv/images")
    >>> with open("redis.tar", "rb") as f:
    ...     backend.write("redis:latest", f)
    >>> backend.list()
    ['redis:latest']
"""

from .config import ImageStashConfig, load_config_from_dict, load_config_from_yaml
from .error_handling import (
    BackendConnectionError,
    DuplicateIdentifierError,
    ImageNotFoundError,
    ImageStoreConfigurationError,
    ImageStoreError,
    InvalidIdentifierError,
    StorageIOError,
)
from .identifiers import ImageIdentifier, format_identifier, normalize_identifier, parse_identifier
from .storage import (
    EngineImageBackend,
    FilesystemImageBackend,
    GridFSImageBackend,
    ImageBackend,
    NameIndex,
    create_image_backend,
    get_image_backend,
    list_image_backends,
    register_image_backend,
    unregister_image_backend,
)
from .transfer import load_archive, mirror_image

__version__ = "0.1.0"

__all__ = [
    # Backends
    "ImageBackend",
    "FilesystemImageBackend",
    "EngineImageBackend",
    "GridFSImageBackend",
    "NameIndex",
    "create_image_backend",
    "get_image_backend",
    "list_image_backends",
    "register_image_backend",
    "unregister_image_backend",
    # Identifiers
    "ImageIdentifier",
    "parse_identifier",
    "format_identifier",
    "normalize_identifier",
    # Configuration
    "ImageStashConfig",
    "load_config_from_dict",
    "load_config_from_yaml",
    # Errors
    "ImageStoreError",
    "DuplicateIdentifierError",
    "ImageNotFoundError",
    "InvalidIdentifierError",
    "StorageIOError",
    "BackendConnectionError",
    "ImageStoreConfigurationError",
    # Transfer
    "mirror_image",
    "load_archive",
    # Version info
    "__version__",
]
