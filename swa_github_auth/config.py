"""Configuration handling helper functions and default configuration."""
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from figcan import Configuration, Extensible  # type:ignore[attr-defined]
from flask import Flask

from swa_github_auth.util import pick_stripped, positive_int

ENV_PREFIX = "SWA_GITHUB_AUTH_"
ENV_FILE = ".env"

# authorizer options settable by the plain GITHUB_* environment variables
GITHUB_ENV_OPTIONS = {
    "GITHUB_REPO_OWNER": "repo_owner",
    "GITHUB_REPO_NAME": "repo_name",
    "GITHUB_API_BASE_URL": "api_url",
    "GITHUB_API_VERSION": "api_version",
    "GITHUB_API_USER_AGENT": "user_agent",
    "GITHUB_APP_ID": "app_id",
    "GITHUB_APP_INSTALLATION_ID": "installation_id",
    "GITHUB_APP_PRIVATE_KEY": "private_key",
}
GITHUB_ENV_TIMEOUT_MS = "GITHUB_API_TIMEOUT_MS"

default_config = {
    "TESTING": False,
    "DEBUG": False,
    "AUTHORIZER": {
        "factory": "swa_github_auth.auth.github:factory",
        "options": Extensible({}),
    },
    "ACCESS_CHECKER": {
        "factory": "swa_github_auth.auth.github:token_factory",
        "options": Extensible({}),
    },
    "GRANTED_ROLES": ["authorized"],
    "REQUIRE_COMPLETE_CONFIG": False,
}

load_dotenv()


def configure(app: Flask, additional_config: dict | None = None) -> Flask:
    """Configure a Flask app using Figcan managed configuration object."""
    config = _compose_config(additional_config)
    app.config.update(config)
    return app


def github_env_options(env: Mapping[str, str]) -> dict[str, Any]:
    """Read authorizer options from GITHUB_* environment variables.

    Unset or blank variables are left out, so the authorizer defaults apply.
    The request timeout comes in milliseconds and is ignored unless it's a
    positive integer.
    """
    options: dict[str, Any] = {}
    for env_name, option in GITHUB_ENV_OPTIONS.items():
        if (value := pick_stripped(env, env_name)) is not None:
            options[option] = value
    timeout_ms = positive_int(env.get(GITHUB_ENV_TIMEOUT_MS))
    if timeout_ms is not None:
        options["api_timeout"] = timeout_ms / 1000
    return options


def _compose_config(
    additional_config: dict[str, Any] | None = None,
) -> Configuration:
    """Compose configuration object from all available sources."""
    config = Configuration(default_config)
    environ = dict(
        os.environ
    )  # Copy the environment as we're going to change it

    if environ.get(f"{ENV_PREFIX}CONFIG_FILE"):
        with Path(environ[f"{ENV_PREFIX}CONFIG_FILE"]).open() as f:
            config_from_file = yaml.safe_load(f)
        config.apply(config_from_file)
        environ.pop(f"{ENV_PREFIX}CONFIG_FILE")

    if environ.get(f"{ENV_PREFIX}CONFIG_STR"):
        config_from_file = yaml.safe_load(environ[f"{ENV_PREFIX}CONFIG_STR"])
        config.apply(config_from_file)
        environ.pop(f"{ENV_PREFIX}CONFIG_STR")

    config.apply_flat(environ, prefix=ENV_PREFIX)

    if github_options := github_env_options(environ):
        config.apply(
            {
                "AUTHORIZER": {"options": github_options},
                "ACCESS_CHECKER": {"options": dict(github_options)},
            }
        )

    if additional_config:
        config.apply(additional_config)

    return config
