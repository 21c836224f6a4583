"""Fixtures for swa_github_auth testing."""
from collections.abc import Generator
from typing import Any

import flask
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from flask.ctx import AppContext
from flask.testing import FlaskClient

from swa_github_auth.app import init_app
from tests.helpers import APP_ID, INSTALLATION_ID, OWNER, REPO, FakeClock


@pytest.fixture(scope="session")
def private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(private_key: rsa.RSAPrivateKey) -> str:
    return private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def authorizer_options(private_key_pem: str) -> dict[str, Any]:
    return {
        "repo_owner": OWNER,
        "repo_name": REPO,
        "app_id": APP_ID,
        "installation_id": INSTALLATION_ID,
        "private_key": private_key_pem,
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def app(authorizer_options: dict[str, Any]) -> flask.Flask:
    """Fixture to configure the Flask app."""
    return init_app(
        additional_config={
            "TESTING": True,
            "AUTHORIZER": {"options": authorizer_options},
            "ACCESS_CHECKER": {
                "options": {"repo_owner": OWNER, "repo_name": REPO}
            },
        }
    )


@pytest.fixture
def app_context(app: flask.Flask) -> Generator:
    ctx = app.app_context()
    try:
        ctx.push()
        yield ctx
    finally:
        ctx.pop()


@pytest.fixture
def test_client(app_context: AppContext) -> FlaskClient:
    test_client: FlaskClient = app_context.app.test_client()
    return test_client
