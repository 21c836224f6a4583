"""Abstract repository authorization layer."""
import logging
from typing import Any, cast

from flask import Flask, current_app
from typing_extensions import Protocol

from swa_github_auth.util import get_callable

from .identity import GithubPrincipal

EXTENSION_NAME = "repository_authorizer"
ACCESS_CHECK_EXTENSION_NAME = "repository_access_checker"


class AuthLogger(Protocol):
    """What the authorizers log to; a `logging.Logger` or `LoggerAdapter`
    does the job.
    """

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        ...


class Authorizer(Protocol):
    """Authorizers are callables (an object or function) deciding whether a
    GitHub principal may access the protected repository.

    They are expected to deny rather than raise on any failure.
    """

    def __call__(
        self, principal: GithubPrincipal, logger: AuthLogger | None = None
    ) -> bool:
        raise NotImplementedError(
            "This is a protocol definition;"
            " it should not be called directly."
        )


class Authorization:
    """Hold the configured authorizer of a Flask app and turn its decisions
    into role names.
    """

    def __init__(self, app: Flask | None = None) -> None:
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize the Flask app."""
        app.config.setdefault(
            "AUTHORIZER", {"factory": "swa_github_auth.auth.github:factory"}
        )
        app.config.setdefault(
            "ACCESS_CHECKER",
            {"factory": "swa_github_auth.auth.github:token_factory"},
        )
        app.config.setdefault("GRANTED_ROLES", ["authorized"])
        app.config.setdefault("REQUIRE_COMPLETE_CONFIG", False)

        authorizer = _create_authorizer(app.config["AUTHORIZER"])
        if app.config["REQUIRE_COMPLETE_CONFIG"]:
            ensure_configured = getattr(authorizer, "ensure_configured", None)
            if ensure_configured is not None:
                ensure_configured()
        app.extensions[EXTENSION_NAME] = authorizer
        app.extensions[ACCESS_CHECK_EXTENSION_NAME] = _create_authorizer(
            app.config["ACCESS_CHECKER"]
        )

    @staticmethod
    def get_authorizer() -> Authorizer:
        return cast(Authorizer, current_app.extensions[EXTENSION_NAME])

    def authorize(
        self, principal: GithubPrincipal, logger: AuthLogger | None = None
    ) -> bool:
        return self.get_authorizer()(principal, logger)

    @staticmethod
    def get_access_checker() -> Authorizer:
        return cast(
            Authorizer, current_app.extensions[ACCESS_CHECK_EXTENSION_NAME]
        )

    def check_access(
        self, principal: GithubPrincipal, logger: AuthLogger | None = None
    ) -> bool:
        """Decide using the access checker, by default the caller's own
        token checked against the repository.
        """
        return self.get_access_checker()(principal, logger)

    @staticmethod
    def granted_roles() -> list[str]:
        """Roles assigned to principals allowed to access the repository."""
        return list(current_app.config["GRANTED_ROLES"])


def _create_authorizer(spec: str | dict[str, Any]) -> Authorizer:
    """Instantiate an authorizer from configuration spec.

    Configuration spec can be a string referencing a callable
    (e.g. mypackage.mymodule:callable) in which case the callable will
    be returned as is; Or, a dict with 'factory' and 'options' keys,
    in which case the factory callable is called with 'options' passed
    in as argument, and the resulting callable is returned.
    """
    log = logging.getLogger(__name__)

    if isinstance(spec, str):
        log.debug(f"Creating authorizer: {spec}")
        authorizer = get_callable(spec, __name__)
    else:
        log.debug(f"Creating authorizer using factory: {spec['factory']}")
        factory = get_callable(spec["factory"], __name__)
        options = spec.get("options") or {}
        authorizer = factory(**options)

    if not callable(authorizer):
        raise TypeError("An authorizer must be a callable.")
    return cast(Authorizer, authorizer)


authorization = Authorization()
