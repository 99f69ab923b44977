"""
Flask application exposing an image backend over HTTP.

Endpoints:
    - GET /image/get/<identifier> - Download an image archive
    - GET /image/list - JSON array of stored identifiers
    - POST /image/save/<repository>/<tag> - Upload an image archive (request body)
    - DELETE /image/delete/<identifier> - Delete an image

Each call to ``create_app()`` builds an independent application bound to one
backend; there is no module-level app.
"""

import logging
from typing import Optional

import docker.errors
from flask import Flask, Response, jsonify, request, stream_with_context

from .config import ImageStashConfig
from .error_handling import (
    BackendConnectionError,
    DuplicateIdentifierError,
    ImageNotFoundError,
    ImageStoreError,
    InvalidIdentifierError,
)
from .identifiers import format_identifier
from .storage.backends.base import DEFAULT_CHUNK_SIZE, ImageBackend

logger = logging.getLogger(__name__)

ARCHIVE_MIMETYPE = "application/x-tar"


def create_app(storage: ImageBackend, config: Optional[ImageStashConfig] = None) -> Flask:
    """
    Create a Flask application serving ``storage``.

    Args:
        storage: Backend every route delegates to
        config: Optional configuration, stored on ``app.config["IMAGESTASH"]``
    """
    app = Flask(__name__)
    app.config["IMAGESTASH"] = config
    app.extensions["imagestash.storage"] = storage

    @app.route("/image/get/<identifier>", methods=["GET"])
    def get_image(identifier):
        logger.info(f"Image requested: {identifier}")
        reader = storage.open_reader(identifier)

        # Read ahead so lookup errors become a status code, not a broken stream
        try:
            first_chunk = reader.read(DEFAULT_CHUNK_SIZE)
        except BaseException:
            reader.close()
            raise

        def generate():
            try:
                if first_chunk:
                    yield first_chunk
                for chunk in reader:
                    yield chunk
            finally:
                reader.close()

        return Response(stream_with_context(generate()), mimetype=ARCHIVE_MIMETYPE)

    @app.route("/image/list", methods=["GET"])
    def list_images():
        images = storage.list()
        logger.debug(f"Listing {len(images)} images")
        return jsonify(images)

    @app.route("/image/save/<repository>/<tag>", methods=["POST"])
    def save_image(repository, tag):
        identifier = format_identifier(repository, tag)
        logger.info(f"Saving image {identifier}")
        storage.write(identifier, request.stream)
        return Response("save image successfully", mimetype="text/plain")

    @app.route("/image/delete/<identifier>", methods=["DELETE"])
    def delete_image(identifier):
        logger.info(f"Deleting image {identifier}")
        storage.delete(identifier)
        return Response("delete image successfully", mimetype="text/plain")

    _register_error_handlers(app)
    return app


def _error_response(error: Exception, status: int):
    response = jsonify({"error": str(error)})
    response.status_code = status
    return response


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ImageNotFoundError)
    @app.errorhandler(docker.errors.NotFound)
    def handle_not_found(error):
        return _error_response(error, 404)

    @app.errorhandler(InvalidIdentifierError)
    def handle_invalid_identifier(error):
        return _error_response(error, 400)

    @app.errorhandler(DuplicateIdentifierError)
    def handle_duplicate(error):
        return _error_response(error, 409)

    @app.errorhandler(BackendConnectionError)
    def handle_unavailable(error):
        return _error_response(error, 503)

    @app.errorhandler(ImageStoreError)
    @app.errorhandler(docker.errors.APIError)
    def handle_storage_error(error):
        logger.error(f"Storage request failed: {error}")
        return _error_response(error, 500)
