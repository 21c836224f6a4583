"""GitHub App JWT signing

A GitHub App authenticates as itself with a short-lived JWT signed by the
App's RSA private key. Such a JWT is only ever used once, to exchange it for
an installation access token (see `swa_github_auth.auth.github`).

See https://docs.github.com/en/apps/creating-github-apps/authenticating-with-a-github-app/generating-a-json-web-token-jwt-for-a-github-app
"""
import dataclasses
from datetime import datetime, timedelta

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from dateutil.tz import UTC

from swa_github_auth.exc import SigningError

ALGORITHM = "RS256"
# GitHub rejects JWTs with an expiry more than 10 minutes ahead
LIFETIME = timedelta(minutes=8)
# backdated to cover for clock drift between us and GitHub
CLOCK_SKEW = timedelta(seconds=60)


@dataclasses.dataclass(frozen=True)
class ServiceIdentity:
    """GitHub App credentials for one installation."""

    app_id: str | None
    private_key: str | None = dataclasses.field(repr=False)
    installation_id: str | None

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.installation_id and self.private_key)


@dataclasses.dataclass(frozen=True)
class SignedAssertion:
    value: str = dataclasses.field(repr=False)
    issued_at: datetime
    expires_at: datetime


def normalize_private_key(private_key: str) -> str:
    r"""Turn literal '\n' sequences of single-line stored keys into newlines.

    >>> normalize_private_key("line1\\nline2")
    'line1\nline2'
    """
    return private_key.replace("\\n", "\n")


def _load_private_key(private_key: str | None) -> RSAPrivateKey:
    if not private_key:
        raise SigningError("GitHub App private key is missing")
    try:
        key = serialization.load_pem_private_key(
            normalize_private_key(private_key).encode(), password=None
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningError(f"Invalid GitHub App private key: {e}") from None
    if not isinstance(key, RSAPrivateKey):
        raise SigningError("GitHub App private key is not an RSA key")
    return key


def sign_app_jwt(
    identity: ServiceIdentity, now: datetime | None = None
) -> SignedAssertion:
    """Create a JWT authenticating the GitHub App of `identity`."""
    if now is None:
        now = datetime.now(tz=UTC)
    key = _load_private_key(identity.private_key)
    issued_at = now - CLOCK_SKEW
    expires_at = now + LIFETIME
    payload = {"iat": issued_at, "exp": expires_at, "iss": identity.app_id}
    try:
        value = jwt.encode(payload, key, algorithm=ALGORITHM)
    except (jwt.PyJWTError, ValueError, TypeError) as e:
        raise SigningError(f"Failed to sign GitHub App JWT: {e}") from None
    return SignedAssertion(value, issued_at, expires_at)
