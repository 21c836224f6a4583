"""Extract the GitHub client principal from a roles source request

Static Web Apps posts the principal as the JSON body of the request. The
base64 encoded `x-ms-client-principal` header, as seen by any API function
behind Static Web Apps, is supported as a fallback.
"""
import base64
import binascii
import json
import logging
from typing import Any

import flask
import marshmallow as ma

from swa_github_auth.auth.identity import GithubPrincipal
from swa_github_auth.schema import principal_schema

PRINCIPAL_HEADER = "x-ms-client-principal"
GITHUB_PROVIDER = "github"

_logger = logging.getLogger(__name__)


def decode_principal_header(value: str | None) -> Any:
    """Decode the base64 JSON principal header, None when it's unusable."""
    if not value:
        return None
    try:
        return json.loads(base64.b64decode(value).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError):
        _logger.debug(f"Ignoring undecodable {PRINCIPAL_HEADER} header")
        return None


def load_principal(candidate: Any) -> GithubPrincipal | None:
    """Normalize a principal payload; only GitHub principals are returned."""
    if not isinstance(candidate, dict):
        return None
    try:
        data = principal_schema.load(candidate)
    except ma.ValidationError as e:
        _logger.debug(f"Ignoring malformed client principal: {e.messages}")
        return None

    if data["identity_provider"] != GITHUB_PROVIDER:
        return None
    return GithubPrincipal(
        identity_provider=GITHUB_PROVIDER,
        user_id=data["user_id"],
        user_details=data["user_details"],
        access_token=data["access_token"],
        user_roles=tuple(data["user_roles"] or ()),
    )


def extract_github_principal(
    request: flask.Request,
) -> GithubPrincipal | None:
    principal = load_principal(request.get_json(silent=True))
    if principal is not None:
        return principal
    header = request.headers.get(PRINCIPAL_HEADER)
    return load_principal(decode_principal_header(header))
