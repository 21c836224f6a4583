"""Objects describing who is asking and what GitHub lets them do."""
import dataclasses
import functools
from enum import Enum


@functools.total_ordering
class PermissionLevel(Enum):
    """GitHub repository collaborator permission, weakest first."""

    NONE = "none"
    READ = "read"
    TRIAGE = "triage"
    WRITE = "write"
    MAINTAIN = "maintain"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PermissionLevel):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def parse(cls, value: str | None) -> "PermissionLevel":
        """Map the API's `permission` value; a missing one means NONE.

        >>> PermissionLevel.parse("write")
        <PermissionLevel.WRITE: 'write'>

        >>> PermissionLevel.parse(None)
        <PermissionLevel.NONE: 'none'>
        """
        if not value:
            return cls.NONE
        return cls(value)


@dataclasses.dataclass(frozen=True, kw_only=True)
class GithubPrincipal:
    """Client principal handed over by the hosting platform, normalized.

    Only principals authenticated by the GitHub identity provider are ever
    represented by this class.
    """

    identity_provider: str = "github"
    user_id: str | None = None
    # the GitHub login
    user_details: str | None = None
    access_token: str | None = dataclasses.field(default=None, repr=False)
    user_roles: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self.user_details or self.user_id or "unknown"
