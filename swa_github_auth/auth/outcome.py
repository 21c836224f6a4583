"""Results of a repository authorization.

Components in the auth package never raise on a failed authorization, they
return one of the objects below and log what happened. Only `Granted` lets
anyone in.
"""
import dataclasses
from enum import Enum

from .identity import PermissionLevel


class ErrorKind(Enum):
    """Why an authorization could not be decided."""

    CONFIGURATION_MISSING = "configuration-missing"
    SIGNING = "signing"
    CREDENTIAL_EXCHANGE = "credential-exchange"
    PERMISSION_QUERY = "permission-query"


@dataclasses.dataclass(frozen=True)
class Granted:
    level: PermissionLevel


@dataclasses.dataclass(frozen=True)
class Denied:
    reason: str


@dataclasses.dataclass(frozen=True)
class Failed:
    kind: ErrorKind
    detail: str
    # HTTP status of the failed GitHub API call, if there was a response
    status: int | None = None


AuthorizationOutcome = Granted | Denied | Failed
