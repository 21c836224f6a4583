"""Objects for GitHub repository collaborator authorization."""
import abc
import dataclasses
import functools
import logging
from collections.abc import Callable, Mapping, MutableMapping
from contextlib import AbstractContextManager, ExitStack
from datetime import datetime, timedelta
from operator import attrgetter
from threading import RLock
from types import TracebackType
from typing import Any, Protocol, TypeVar, cast, overload
from urllib.parse import quote

import cachetools.keys
import marshmallow as ma
import marshmallow.validate
import requests
from dateutil.parser import isoparse
from dateutil.tz import UTC

from swa_github_auth.auth import AuthLogger
from swa_github_auth.auth.identity import GithubPrincipal, PermissionLevel
from swa_github_auth.auth.jwt import ServiceIdentity, sign_app_jwt
from swa_github_auth.auth.outcome import (
    AuthorizationOutcome,
    Denied,
    ErrorKind,
    Failed,
    Granted,
)
from swa_github_auth.exc import ConfigurationError, SigningError

_logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "swa-github-repo-auth"
# an installation token this close to its expiry is considered expired
EXPIRY_BUFFER = timedelta(seconds=60)
UNUSABLE_TOKEN_RESPONSE = "Failed to obtain installation access token."

SessionFactory = Callable[[], requests.Session]


# THREAD SAFE CALL COALESCING
# original type preserving "return type" for the decorator below
_RT = TypeVar("_RT")


class _LockType(AbstractContextManager, Protocol):
    """Generic type for threading.Lock and RLock."""

    def acquire(self, blocking: bool = ..., timeout: float = ...) -> bool:
        ...

    def release(self) -> None:
        ...


@dataclasses.dataclass(kw_only=True)
class SingleCallContext:
    """Thread-safety context for the single_call_method decorator."""

    # reentrant lock guarding a call with particular arguments
    rlock: _LockType = dataclasses.field(default_factory=RLock)
    start_call: bool = True
    result: Any = None
    error: BaseException | None = None


def _ensure_lock(
    existing_lock: Callable[[Any], _LockType] | None = None,
) -> Callable[[Any], _LockType]:
    if existing_lock is None:
        default_lock = RLock()
        return lambda _self: default_lock
    return existing_lock


@overload
def single_call_method(_method: Callable[..., _RT]) -> Callable[..., _RT]:
    ...


@overload
def single_call_method(
    *,
    key: Callable[..., Any] = cachetools.keys.methodkey,
    lock: Callable[[Any], _LockType] | None = None,
) -> Callable[[Callable[..., _RT]], Callable[..., _RT]]:
    ...


def single_call_method(
    _method: Callable[..., _RT] | None = None,
    *,
    key: Callable[..., Any] = cachetools.keys.methodkey,
    lock: Callable[[Any], _LockType] | None = None,
) -> Callable[..., _RT] | Callable[[Callable[..., _RT]], Callable[..., _RT]]:
    """Thread-safe decorator limiting concurrency of an idempotent method call.
    When multiple threads concurrently call the decorated method with the same
    arguments (governed by the 'key' callable argument), only the first one
    will actually call the method. The other threads will block until the call
    completes with a result or an exception. The saved result is then passed on
    to the blocked threads without multiple calls. When the method call raises
    an exception, it is re-raised in each blocked thread.

    This doesn't provide further caching - as soon as the method call is done
    and all the blocked threads are served, the call is free to happen again.

    It's possible to provide a "getter" callable for the lock guarding the
    concurrent calls registry, called as 'lock(self)'. There's a built-in lock
    by default. Each concurrent call is then guarded by its own reentrant lock.
    """
    lock = _ensure_lock(lock)

    def decorator(method: Callable[..., _RT]) -> Callable[..., _RT]:
        # tracking concurrent calls per method arguments
        concurrent_calls: dict[Any, SingleCallContext] = {}

        @functools.wraps(method)
        def wrapper(self: Any, *args: tuple, **kwargs: dict) -> _RT:
            lck = lock(self)
            k = key(self, *args, **kwargs)
            with lck:
                try:
                    ctx = concurrent_calls[k]
                except KeyError:
                    concurrent_calls[k] = ctx = SingleCallContext()
                    # start locked for the current thread, so the following
                    # gap won't let other threads populate the result
                    ctx.rlock.acquire()

            with ctx.rlock:
                if ctx.start_call:
                    ctx.start_call = False
                    ctx.rlock.release()  # unlock the starting lock
                    try:
                        result = method(self, *args, **kwargs)
                    except BaseException as e:
                        ctx.error = e
                        raise
                    finally:
                        # call is done, cleanup its entry
                        with lck:
                            del concurrent_calls[k]
                    ctx.result = result
                    return result

                else:
                    # call is done
                    if ctx.error:
                        raise ctx.error
                    return cast(_RT, ctx.result)

        return wrapper

    if _method is None:
        return decorator
    else:
        return decorator(_method)


# AUTHORIZER CONFIGURATION OPTIONS (and their validation)
class RequestsTimeout(ma.fields.Field):
    """Marshmallow Field validating a requests library timeout."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        pos_float = ma.fields.Float(validate=ma.validate.Range(min=0))
        self.possible_fields = (
            ma.fields.Tuple((pos_float, pos_float)),
            pos_float,
        )

    def _deserialize(
        self,
        value: Any,
        attr: str | None,
        data: Mapping[str, Any] | None,
        **kwargs: Any,
    ) -> Any:  # float | tuple[float, float]
        errors = {}
        for field in self.possible_fields:
            try:
                return field.deserialize(value, **kwargs)
            except ma.ValidationError as error:  # noqa: PERF203
                if error.valid_data is not None:
                    # parsing partially successful, don't bother with the rest
                    raise
                errors.update({field.__class__.__name__: error.messages})
        raise ma.ValidationError(errors)


@dataclasses.dataclass(frozen=True, kw_only=True)
class Config:
    """Authorizer configuration.
    Create this class using from_dict() method that applies schema validation
    and proper default values.
    """

    # base URL for the GitHub API
    # (enterprise server has API at <hostname>/api/v3/)
    api_url: str
    # GitHub API version to target (set to None for the default latest)
    api_version: str | None
    # GitHub API requests timeout
    api_timeout: float | tuple[float, float]
    user_agent: str
    # the one repository access is granted to
    repo_owner: str
    repo_name: str
    # GitHub App identity (not needed for direct token authorization)
    app_id: str | None
    installation_id: str | None
    private_key: str | None = dataclasses.field(repr=False)

    class Schema(ma.Schema):
        api_url = ma.fields.Url(load_default="https://api.github.com")
        api_version = ma.fields.String(
            load_default="2022-11-28", allow_none=True
        )
        api_timeout = RequestsTimeout(load_default=5.0)
        user_agent = ma.fields.String(load_default=DEFAULT_USER_AGENT)
        repo_owner = ma.fields.String(load_default="")
        repo_name = ma.fields.String(load_default="")
        app_id = ma.fields.String(load_default=None, allow_none=True)
        installation_id = ma.fields.String(load_default=None, allow_none=True)
        private_key = ma.fields.String(load_default=None, allow_none=True)

        @ma.pre_load
        def sanitize(
            self, data: Mapping[str, Any], **_kwargs: Mapping
        ) -> dict[str, Any]:
            sanitized = dict(data)
            for name in ("app_id", "installation_id"):
                # numeric ids are fine too, e.g. coming from YAML
                value = sanitized.get(name)
                if isinstance(value, int) and not isinstance(value, bool):
                    sanitized[name] = str(value)
            return {
                k: v.strip() if isinstance(v, str) else v
                for k, v in sanitized.items()
            }

        @ma.post_load
        def make_object(
            self, data: MutableMapping[str, Any], **_kwargs: Mapping
        ) -> "Config":
            data["api_url"] = data["api_url"].rstrip("/")
            return Config(**data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        return cast(Config, cls.Schema().load(data, unknown=ma.RAISE))

    @property
    def repo_path(self) -> str:
        owner = quote(self.repo_owner, safe="")
        name = quote(self.repo_name, safe="")
        return f"{owner}/{name}"

    def missing(self, app_credentials: bool = True) -> list[str]:
        """Return the names of required options that are not set."""
        required = ["repo_owner", "repo_name"]
        if app_credentials:
            required += ["app_id", "installation_id", "private_key"]
        return [name for name in required if not getattr(self, name)]

    def ensure_complete(self, app_credentials: bool = True) -> None:
        if missing := self.missing(app_credentials):
            raise ConfigurationError(missing)


# GITHUB API ACCESS
@dataclasses.dataclass
class ApiContext:
    """Context manager holding an open requests client session, sending
    requests to the GitHub API authenticated with a bearer token.
    """

    # authorizer config
    cfg: Config
    # bearer token for all the calls
    token: str = dataclasses.field(repr=False)
    session_factory: SessionFactory = requests.Session
    _api_headers: dict[str, str] = dataclasses.field(
        init=False,
        default_factory=lambda: {"Accept": "application/vnd.github+json"},
    )
    # requests session to reuse a connection to GitHub
    _session: requests.Session | None = dataclasses.field(
        init=False, default=None
    )
    _exit_stack: ExitStack = dataclasses.field(
        init=False, default_factory=ExitStack
    )

    def __post_init__(self) -> None:
        self._api_headers["Authorization"] = f"Bearer {self.token}"
        self._api_headers["User-Agent"] = self.cfg.user_agent
        if self.cfg.api_version:
            self._api_headers["X-GitHub-Api-Version"] = self.cfg.api_version

    def __enter__(self) -> "ApiContext":
        self._session = self._exit_stack.enter_context(self.session_factory())
        self._session.headers.update(self._api_headers)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Any:
        self._session = None
        self._exit_stack.close()

    def _request(
        self, method: str, uri: str, **kwargs: Any
    ) -> requests.Response:
        if self._session is None:
            raise RuntimeError(
                "ApiContext is a context manager maintaining a requests "
                "session. Send requests only within its entered context."
            )
        response = self._session.request(
            method,
            f"{self.cfg.api_url}{uri}",
            headers=self._api_headers,
            timeout=self.cfg.api_timeout,
            **kwargs,
        )
        response.raise_for_status()
        return response

    def api_get(self, uri: str) -> Any:
        return self._request("GET", uri).json()

    def api_post(self, uri: str, payload: Any = None) -> Any:
        return self._request("POST", uri, json=payload).json()

    def api_check(self, uri: str) -> None:
        """Only make sure the GET request succeeds, ignore the content."""
        self._request("GET", uri)


def _status(error: requests.exceptions.RequestException) -> int | None:
    # a 4xx/5xx Response is falsy, compare to None
    if error.response is not None:
        return error.response.status_code
    return None


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


# CORE AUTH
@dataclasses.dataclass(frozen=True)
class InstallationCredential:
    """GitHub App installation access token."""

    token: str = dataclasses.field(repr=False)
    expires_at: datetime

    def valid_at(self, now: datetime) -> bool:
        return now + EXPIRY_BUFFER < self.expires_at

    @classmethod
    def from_response(
        cls, data: Any
    ) -> "InstallationCredential | None":
        """Build the credential from the token endpoint response, if sane."""
        if not isinstance(data, Mapping):
            return None
        token, expires = data.get("token"), data.get("expires_at")
        if not (token and isinstance(token, str) and isinstance(expires, str)):
            return None
        try:
            expires_at = isoparse(expires)
        except (ValueError, OverflowError):
            return None
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return cls(token, expires_at)


class InstallationTokenManager:
    """Provide a GitHub App installation access token, exchanging a freshly
    signed App JWT for a new one when the cached token is about to expire.

    The cached token is replaced as a whole; readers never lock. Concurrent
    refreshes of the same manager are coalesced into a single exchange.
    """

    def __init__(
        self,
        cfg: Config,
        identity: ServiceIdentity,
        *,
        clock: Callable[[], datetime] = _utcnow,
        session_factory: SessionFactory = requests.Session,
    ) -> None:
        self._cfg = cfg
        self._identity = identity
        self._clock = clock
        self._session_factory = session_factory
        self._credential: InstallationCredential | None = None
        self._refresh_lock = RLock()

    @property
    def configured(self) -> bool:
        return self._identity.configured

    def get_token(
        self, logger: AuthLogger | None = None
    ) -> InstallationCredential | None:
        result = self.acquire(logger)
        return result if isinstance(result, InstallationCredential) else None

    def acquire(
        self, logger: AuthLogger | None = None
    ) -> InstallationCredential | Failed:
        """Return a valid installation token, or why there's none."""
        credential = self._credential
        if credential is not None and credential.valid_at(self._clock()):
            return credential

        log = logger or _logger
        if not self._identity.configured:
            msg = "GitHub App credentials are not configured."
            log.warning(msg)
            return Failed(ErrorKind.CONFIGURATION_MISSING, msg)

        # coalesced callers share the result, each logs it to its own logger
        result = self._exchange()
        if isinstance(result, InstallationCredential):
            log.info("Obtained GitHub App installation token.")
        elif result.detail == UNUSABLE_TOKEN_RESPONSE:
            log.warning(result.detail)
        else:
            log.error(
                f"Failed to create GitHub App installation token: "
                f"{result.detail}"
            )
            if result.status:
                log.error(
                    f"GitHub App token endpoint responded with status "
                    f"{result.status}."
                )
        return result

    @single_call_method(
        key=lambda self: cachetools.keys.hashkey(id(self)),
        lock=attrgetter("_refresh_lock"),
    )
    def _exchange(self) -> InstallationCredential | Failed:
        now = self._clock()
        # another thread might have just finished the refresh
        credential = self._credential
        if credential is not None and credential.valid_at(now):
            return credential

        try:
            assertion = sign_app_jwt(self._identity, now)
        except SigningError as e:
            return Failed(ErrorKind.SIGNING, str(e))

        installation_id = quote(cast(str, self._identity.installation_id))
        uri = f"/app/installations/{installation_id}/access_tokens"
        _logger.debug(f"Requesting installation token via {uri}")
        try:
            with ApiContext(
                self._cfg, assertion.value, self._session_factory
            ) as ctx:
                data = ctx.api_post(uri, {})
        except requests.exceptions.RequestException as e:
            return Failed(ErrorKind.CREDENTIAL_EXCHANGE, str(e), _status(e))

        credential = InstallationCredential.from_response(data)
        if credential is None or not credential.valid_at(now):
            return Failed(
                ErrorKind.CREDENTIAL_EXCHANGE, UNUSABLE_TOKEN_RESPONSE
            )

        self._credential = credential
        return credential


class CollaboratorPermissionEvaluator:
    """Look up a user's collaborator permission on the configured repo."""

    def __init__(
        self,
        cfg: Config,
        *,
        session_factory: SessionFactory = requests.Session,
    ) -> None:
        self._cfg = cfg
        self._session_factory = session_factory

    def check(
        self, token: str, username: str, logger: AuthLogger | None = None
    ) -> PermissionLevel | Denied | Failed:
        log = logger or _logger
        uri = (
            f"/repos/{self._cfg.repo_path}/collaborators/"
            f"{quote(username, safe='')}/permission"
        )
        try:
            with ApiContext(self._cfg, token, self._session_factory) as ctx:
                data = ctx.api_get(uri)
        except requests.exceptions.RequestException as e:
            if (status := _status(e)) == 404:
                return Denied(f"not found ({status})")
            return self._failed(log, str(e))

        gh_permission = None
        if isinstance(data, Mapping):
            gh_permission = data.get("permission")
        try:
            level = PermissionLevel.parse(gh_permission)
        except ValueError:
            return self._failed(
                log, f"unrecognized permission '{gh_permission}'"
            )
        log.info(
            f"GitHub permission check result for {username}: {level.value}"
        )
        return level

    @staticmethod
    def _failed(log: AuthLogger, detail: str) -> Failed:
        log.error(
            f"GitHub API error while authorizing repository access: {detail}"
        )
        return Failed(ErrorKind.PERMISSION_QUERY, detail)


class BaseRepositoryAuthorizer(abc.ABC):
    """Decide whether a principal may access the one configured repository.

    Every failure, whatever the cause, ends up as a denial.
    """

    # whether GitHub App credentials are required
    uses_app_credentials: bool = True

    def __init__(
        self,
        cfg: Config,
        *,
        session_factory: SessionFactory = requests.Session,
    ) -> None:
        if not callable(session_factory):
            raise TypeError("An HTTP session factory must be provided.")
        self.config = cfg
        self._session_factory = session_factory

    @abc.abstractmethod
    def evaluate(
        self, subject: str | None, logger: AuthLogger | None = None
    ) -> AuthorizationOutcome:
        """Authorize the subject and tell how the decision came about."""

    @abc.abstractmethod
    def subject(self, principal: GithubPrincipal) -> str | None:
        """Pick the principal's value this authorizer works with."""

    def authorize(
        self, subject: str | None, logger: AuthLogger | None = None
    ) -> bool:
        return isinstance(self.evaluate(subject, logger), Granted)

    def __call__(
        self, principal: GithubPrincipal, logger: AuthLogger | None = None
    ) -> bool:
        return self.authorize(self.subject(principal), logger)

    def ensure_configured(self) -> None:
        self.config.ensure_complete(app_credentials=self.uses_app_credentials)

    def _check_repo_configured(self, log: AuthLogger) -> Failed | None:
        if self.config.repo_owner and self.config.repo_name:
            return None
        msg = "Repository identification is not configured."
        log.warning(msg)
        return Failed(ErrorKind.CONFIGURATION_MISSING, msg)


class RepositoryAuthorizer(BaseRepositoryAuthorizer):
    """Authorize GitHub users by their collaborator permission, looked up
    using a GitHub App installation token. Any permission other than 'none'
    grants access.
    """

    def __init__(
        self,
        cfg: Config,
        *,
        clock: Callable[[], datetime] = _utcnow,
        session_factory: SessionFactory = requests.Session,
    ) -> None:
        super().__init__(cfg, session_factory=session_factory)
        identity = ServiceIdentity(
            cfg.app_id, cfg.private_key, cfg.installation_id
        )
        self.token_manager = InstallationTokenManager(
            cfg, identity, clock=clock, session_factory=session_factory
        )
        self._evaluator = CollaboratorPermissionEvaluator(
            cfg, session_factory=session_factory
        )

    def subject(self, principal: GithubPrincipal) -> str | None:
        return principal.user_details

    def evaluate(
        self, subject: str | None, logger: AuthLogger | None = None
    ) -> AuthorizationOutcome:
        log = logger or _logger
        username = subject
        if not username:
            log.warning(
                "No GitHub username supplied to repository authorizer."
            )
            return Denied("no username")
        if failure := self._check_repo_configured(log):
            return failure

        credential = self.token_manager.acquire(log)
        if isinstance(credential, Failed):
            log.warning("Unable to acquire installation token.")
            return credential

        result = self._evaluator.check(credential.token, username, log)
        if isinstance(result, PermissionLevel):
            if result > PermissionLevel.NONE:
                log.info(
                    f"Repository access granted for {username} "
                    f"({result.value})."
                )
                return Granted(result)
            result = Denied("no permission")

        reason = (
            result.reason
            if isinstance(result, Denied)
            else "permission check failed"
        )
        log.warning(f"Repository access denied for {username}: {reason}.")
        return result


class DirectTokenAuthorizer(BaseRepositoryAuthorizer):
    """Authorize the caller's own GitHub token by checking whether it can
    see the configured repository at all.

    This can't tell a read-only collaborator from an admin, nor a public
    repository from a private one; prefer RepositoryAuthorizer.
    """

    uses_app_credentials = False

    def subject(self, principal: GithubPrincipal) -> str | None:
        return principal.access_token

    def evaluate(
        self, subject: str | None, logger: AuthLogger | None = None
    ) -> AuthorizationOutcome:
        log = logger or _logger
        access_token = subject
        if not access_token:
            log.warning("No access token supplied to repository authorizer.")
            return Denied("no access token")
        if failure := self._check_repo_configured(log):
            return failure

        try:
            with ApiContext(
                self.config, access_token, self._session_factory
            ) as ctx:
                ctx.api_check(f"/repos/{self.config.repo_path}")
        except requests.exceptions.RequestException as e:
            if (status := _status(e)) in (401, 403, 404):
                log.warning(f"Repository access denied ({status}).")
                return Denied(f"{status}")
            log.error(
                f"GitHub API error while authorizing repository access: {e}"
            )
            return Failed(ErrorKind.PERMISSION_QUERY, str(e))

        _logger.debug(f"Token can access {self.config.repo_path}")
        return Granted(PermissionLevel.READ)


def factory(**options: Any) -> RepositoryAuthorizer:
    """Build the GitHub App based authorizer from supplied options."""
    config = Config.from_dict(options)
    return RepositoryAuthorizer(config)


def token_factory(**options: Any) -> DirectTokenAuthorizer:
    """Build the direct (caller's) token authorizer from supplied options."""
    config = Config.from_dict(options)
    return DirectTokenAuthorizer(config)
