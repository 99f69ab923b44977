"""
Configuration Management for imagestash
=======================================

Configuration is split into one focused dataclass per concern. The backend
is chosen once, at startup, from ``ImageStashConfig.backend``.

Sources:
- keyword arguments / dataclass construction
- environment variables (``ImageStashConfig.from_env()``)
- YAML files (``load_config_from_yaml()``)
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from .error_handling import ImageStoreConfigurationError

logger = logging.getLogger(__name__)

BUILTIN_BACKENDS = ("filesystem", "engine", "gridfs")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class FilesystemConfig:
    """Configuration for the filesystem backend."""

    root_dir: str = "./images"
    chunk_size: int = 64 * 1024

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ImageStoreConfigurationError(
                "chunk_size must be positive", {"chunk_size": self.chunk_size}
            )
        logger.debug(f"Filesystem storage configured: root_dir={self.root_dir}")


@dataclass
class EngineConfig:
    """Configuration for the container engine backend."""

    base_url: Optional[str] = None  # None: use DOCKER_HOST & co.
    timeout: int = 120

    def __post_init__(self):
        if self.timeout <= 0:
            raise ImageStoreConfigurationError(
                "timeout must be positive", {"timeout": self.timeout}
            )
        logger.debug(f"Engine configured: base_url={self.base_url or 'environment'}")


@dataclass
class DocumentStoreConfig:
    """Configuration for the GridFS backend."""

    url: str = "mongodb://localhost:27017"
    database: str = "imagestash"
    bucket_name: str = "fs"
    chunk_size_bytes: int = 255 * 1024
    server_selection_timeout_ms: int = 5000

    def __post_init__(self):
        if not self.database:
            raise ImageStoreConfigurationError("database must not be empty")
        if not self.bucket_name:
            raise ImageStoreConfigurationError("bucket_name must not be empty")
        if self.chunk_size_bytes <= 0:
            raise ImageStoreConfigurationError(
                "chunk_size_bytes must be positive",
                {"chunk_size_bytes": self.chunk_size_bytes},
            )
        if self.server_selection_timeout_ms <= 0:
            raise ImageStoreConfigurationError(
                "server_selection_timeout_ms must be positive",
                {"server_selection_timeout_ms": self.server_selection_timeout_ms},
            )
        logger.debug(
            f"Document store configured: database={self.database}, bucket={self.bucket_name}"
        )


@dataclass
class ServerConfig:
    """Configuration for the HTTP server."""

    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    def __post_init__(self):
        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ImageStoreConfigurationError(
                f"log_level must be one of {VALID_LOG_LEVELS}", {"log_level": self.log_level}
            )
        if not (0 < self.port < 65536):
            raise ImageStoreConfigurationError("port out of range", {"port": self.port})


@dataclass
class ImageStashConfig:
    """Main configuration combining all sub-configurations."""

    backend: str = "filesystem"
    filesystem: FilesystemConfig = field(default_factory=FilesystemConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    document_store: DocumentStoreConfig = field(default_factory=DocumentStoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    # constructor options passed through to the selected backend
    backend_options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # any registered backend name is accepted; create_image_backend() resolves it
        if not isinstance(self.backend, str) or not self.backend:
            raise ImageStoreConfigurationError(
                f"Invalid backend: {self.backend!r}. Built-in backends: {BUILTIN_BACKENDS}",
                {"backend": self.backend},
            )
        if not isinstance(self.backend_options, Mapping):
            raise ImageStoreConfigurationError(
                "backend_options must be a mapping", {"backend": self.backend}
            )
        logger.debug(f"Storage backend selected: {self.backend}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ImageStashConfig":
        """
        Build configuration from environment variables.

        Environment Variables:
            IMAGESTASH_BACKEND: filesystem, engine, gridfs or a registered backend.
                Default: filesystem
            IMAGESTASH_ROOT_DIR: Filesystem root. Default: ./images
            IMAGESTASH_CHUNK_SIZE: Filesystem copy chunk size. Default: 65536
            DOCKER_HOST: Engine URL. Default: docker environment defaults
            IMAGESTASH_DOCKER_TIMEOUT: Engine call timeout (s). Default: 120
            IMAGESTASH_MONGO_URL: Default: mongodb://localhost:27017
            IMAGESTASH_MONGO_DB: Default: imagestash
            IMAGESTASH_GRIDFS_PREFIX: GridFS bucket name. Default: fs
            IMAGESTASH_HOST: Server bind address. Default: 0.0.0.0
            IMAGESTASH_PORT: Server bind port. Default: 8080
            LOG_LEVEL: Default: INFO
        """
        env = os.environ if environ is None else environ

        try:
            return cls(
                backend=env.get("IMAGESTASH_BACKEND", "filesystem"),
                filesystem=FilesystemConfig(
                    root_dir=env.get("IMAGESTASH_ROOT_DIR", "./images"),
                    chunk_size=int(env.get("IMAGESTASH_CHUNK_SIZE", str(64 * 1024))),
                ),
                engine=EngineConfig(
                    base_url=env.get("DOCKER_HOST") or None,
                    timeout=int(env.get("IMAGESTASH_DOCKER_TIMEOUT", "120")),
                ),
                document_store=DocumentStoreConfig(
                    url=env.get("IMAGESTASH_MONGO_URL", "mongodb://localhost:27017"),
                    database=env.get("IMAGESTASH_MONGO_DB", "imagestash"),
                    bucket_name=env.get("IMAGESTASH_GRIDFS_PREFIX", "fs"),
                ),
                server=ServerConfig(
                    host=env.get("IMAGESTASH_HOST", "0.0.0.0"),
                    port=int(env.get("IMAGESTASH_PORT", "8080")),
                    log_level=env.get("LOG_LEVEL", "INFO"),
                ),
            )
        except ValueError as e:
            raise ImageStoreConfigurationError(f"Invalid environment value: {e}") from e


_SECTIONS = {
    "filesystem": FilesystemConfig,
    "engine": EngineConfig,
    "document_store": DocumentStoreConfig,
    "server": ServerConfig,
}


def load_config_from_dict(data: Optional[Mapping[str, Any]]) -> ImageStashConfig:
    """
    Build configuration from a nested mapping.

    Example:
        >>> load_config_from_dict({"backend": "gridfs", "document_store": {"database": "img"}})
    """
    data = dict(data or {})
    kwargs: Dict[str, Any] = {}

    if "backend" in data:
        kwargs["backend"] = data.pop("backend")
    if "backend_options" in data:
        backend_options = data.pop("backend_options") or {}
        if not isinstance(backend_options, Mapping):
            raise ImageStoreConfigurationError("Section 'backend_options' must be a mapping")
        kwargs["backend_options"] = dict(backend_options)

    for section, section_class in _SECTIONS.items():
        values = data.pop(section, None)
        if values is None:
            continue
        if not isinstance(values, Mapping):
            raise ImageStoreConfigurationError(
                f"Section '{section}' must be a mapping", {"section": section}
            )
        try:
            kwargs[section] = section_class(**values)
        except TypeError as e:
            raise ImageStoreConfigurationError(
                f"Invalid options for section '{section}': {e}", {"section": section}
            ) from e

    for key in data:
        logger.warning(f"Unknown configuration section ignored: {key}")

    return ImageStashConfig(**kwargs)


def load_config_from_yaml(path: Union[str, Path]) -> ImageStashConfig:
    """Load configuration from a YAML file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ImageStoreConfigurationError(
            f"Cannot read config file {path}: {e}", {"path": str(path)}
        ) from e
    except yaml.YAMLError as e:
        raise ImageStoreConfigurationError(
            f"Invalid YAML in {path}: {e}", {"path": str(path)}
        ) from e

    if data is not None and not isinstance(data, Mapping):
        raise ImageStoreConfigurationError(
            f"Config file {path} must contain a mapping", {"path": str(path)}
        )

    logger.info(f"Loaded configuration from {path}")
    return load_config_from_dict(data)
