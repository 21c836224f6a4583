"""Errors raised outside of the request/response cycle.

Runtime authorization failures are not exceptions; see
`swa_github_auth.auth.outcome`.
"""


class ConfigurationError(ValueError):
    """Required settings are missing or invalid"""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "Missing required GitHub repository configuration: "
            + ", ".join(missing)
        )
        self.missing = missing


class SigningError(RuntimeError):
    """A GitHub App JWT could not be created"""
