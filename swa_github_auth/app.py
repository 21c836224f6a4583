"""Roles source Flask application."""
import logging
import os
from typing import Any

from flask import Flask
from flask_marshmallow import Marshmallow  # type: ignore

from swa_github_auth import config, view
from swa_github_auth.auth import authorization
from swa_github_auth.error_handling import ApiErrorHandler

LOG_FORMAT = "%(asctime)-15s %(name)-15s %(levelname)s %(message)s"


def init_app(
    app: Flask | None = None, additional_config: dict[str, Any] | None = None
) -> Flask:
    """Create (or set up the given) Flask app serving the roles endpoint.

    Fails with ConfigurationError right away when REQUIRE_COMPLETE_CONFIG
    is set and the authorizer is missing some settings.
    """
    if app is None:
        app = Flask(__name__)

    config.configure(app, additional_config=additional_config)

    if os.environ.get(f"{config.ENV_PREFIX}DEBUG"):
        level = logging.DEBUG
    else:
        level = logging.WARNING
    logging.basicConfig(format=LOG_FORMAT, level=level)

    ApiErrorHandler(app)
    Marshmallow(app)

    authorization.init_app(app)

    view.AuthorizeRepositoryAccessView.register(app)
    view.CheckAccessView.register(app)

    return app
