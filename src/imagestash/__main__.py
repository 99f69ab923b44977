"""
Run the image repository service.

Configuration comes from the YAML file named by ``IMAGESTASH_CONFIG`` when
set, otherwise from environment variables (see ``ImageStashConfig.from_env``).

Example:
    $ IMAGESTASH_BACKEND=filesystem IMAGESTASH_ROOT_DIR=/srv/images python -m imagestash
    $ curl -X POST --data-binary @redis.tar localhost:8080/image/save/redis/latest
    $ curl localhost:8080/image/list
"""

import logging
import os

from .config import ImageStashConfig, load_config_from_yaml
from .storage.backends import create_image_backend
from .web import create_app

logger = logging.getLogger(__name__)


def load_config() -> ImageStashConfig:
    config_file = os.getenv("IMAGESTASH_CONFIG")
    if config_file:
        return load_config_from_yaml(config_file)
    return ImageStashConfig.from_env()


def main():
    """Main entry point for the image repository service."""
    config = load_config()

    logging.basicConfig(
        level=config.server.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logger.info(f"Starting image repository on {config.server.host}:{config.server.port}")
    logger.info(f"Storage backend: {config.backend}")

    with create_image_backend(config) as storage:
        app = create_app(storage, config)
        app.run(host=config.server.host, port=config.server.port, threaded=True)


if __name__ == "__main__":
    main()
