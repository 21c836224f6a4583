"""Flask-Classful View Classes."""
import logging
from typing import Any, ClassVar

from flask import request
from flask_classful import FlaskView

from swa_github_auth import representation
from swa_github_auth.auth import authorization
from swa_github_auth.auth.identity import GithubPrincipal
from swa_github_auth.principal import extract_github_principal

_logger = logging.getLogger(__name__)


class BaseView(FlaskView):
    """Extends Flask-Classful's base view class to add some common
    custom functionality.
    """

    representations: ClassVar = {
        "application/json": representation.output_json,
        "flask-classful/default": representation.output_json,
    }

    route_prefix: ClassVar = "/api/"

    trailing_slash = False


class RolesSourceView(BaseView):
    """Roles source function for Static Web Apps custom role assignment.

    Always responds with 200 and a (possibly empty) list of roles; a denied
    user and a failed authorization look the same to the caller.
    """

    def post(self) -> dict[str, Any]:
        try:
            roles = self._roles()
        except Exception as e:  # noqa: BLE001
            _logger.exception(f"Unhandled authorization error: {e}")
            roles = []
        return {"roles": roles}

    def _decide(self, principal: GithubPrincipal) -> bool:
        raise NotImplementedError

    def _roles(self) -> list[str]:
        principal = extract_github_principal(request)
        if principal is None:
            _logger.info(
                "Non-GitHub identity detected, assigning anonymous role."
            )
            return []

        if self._decide(principal):
            _logger.info(f"User {principal.label}: access granted")
            return authorization.granted_roles()
        _logger.info(f"User {principal.label}: access denied")
        return []


class AuthorizeRepositoryAccessView(RolesSourceView):
    """Grant the roles to collaborators of the repository."""

    route_base = "AuthorizeRepositoryAccess"

    def _decide(self, principal: GithubPrincipal) -> bool:
        return authorization.authorize(principal)


class CheckAccessView(RolesSourceView):
    """Grant the roles to callers whose own GitHub token can see the
    repository.
    """

    route_base = "CheckAccess"

    def _decide(self, principal: GithubPrincipal) -> bool:
        return authorization.check_access(principal)
