"""
Shared pytest fixtures for repomirror tests.

Fixtures provided:
- db_session: temporary SQLite database with every table created
- cipher: TokenCipher with a random key
- github: FakeGitHub, an in-memory stand-in for api.github.com
- http_client: httpx.AsyncClient routed to the fake
- app_private_key: PEM RSA key for signing GitHub App JWTs
"""

import json
import os
import tempfile
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from repomirror.core.crypto import TokenCipher
from repomirror.core.db import init_db


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Create a temporary SQLite database for testing.

    Yields a session bound to a fresh schema; the file is removed afterwards.
    """
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    engine = create_engine(f"sqlite:///{db_path}")
    init_db(bind=engine)

    TestSession = sessionmaker(bind=engine)
    session = TestSession()

    yield session

    session.close()
    engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(AESGCM.generate_key(bit_length=256))


@pytest.fixture(scope="session")
def app_private_key() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


class FakeGitHub:
    """
    Minimal GitHub API served through httpx.MockTransport.

    GraphQL: answers aliased object(expression:) lookups from `objects`,
    keyed by (owner, repo, "branch:path").
    REST: repo installation lookup and installation token minting.
    Every request is kept in `requests`.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.objects: dict[tuple[str, str, str], dict] = {}
        self.installations: dict[tuple[str, str], int] = {}
        self.minted: list[str] = []
        self.token_ttl = 3600
        self.graphql_status = 200
        self.graphql_errors: list[dict] | None = None

    # -- seeding helpers ----------------------------------------------------

    def add_blob(self, owner, repo, branch, path, text, oid=None):
        blob = {"text": text, "oid": oid or f"sha-{path}-{len(text or '')}"}
        self.objects[(owner, repo, f"{branch}:{path}")] = blob
        return blob

    def add_tree(self, owner, repo, branch, path, children: dict):
        """children maps name -> text for files, or None for subdirectories."""
        entries = []
        for name, text in children.items():
            child_path = f"{path}/{name}" if path else name
            if text is None:
                entries.append({"name": name, "path": child_path, "type": "tree", "object": {}})
            else:
                blob = self.add_blob(owner, repo, branch, child_path, text)
                entries.append({"name": name, "path": child_path, "type": "blob", "object": dict(blob)})
        self.objects[(owner, repo, f"{branch}:{path}")] = {"entries": entries}

    # -- request inspection ---------------------------------------------------

    @property
    def graphql_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/graphql"]

    def rest_calls(self, suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    # -- transport ----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/graphql":
            return self._graphql(request)

        parts = path.strip("/").split("/")
        if request.method == "GET" and len(parts) == 4 and parts[0] == "repos" and parts[3] == "installation":
            installation_id = self.installations.get((parts[1], parts[2]))
            if installation_id is None:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"id": installation_id, "account": {"login": parts[1]}})

        if request.method == "POST" and parts[:2] == ["app", "installations"] and parts[-1] == "access_tokens":
            token = f"ghs_installation_{parts[2]}_{len(self.minted) + 1}"
            self.minted.append(token)
            expires = datetime.fromtimestamp(
                int(datetime.now(timezone.utc).timestamp()) + self.token_ttl, tz=timezone.utc
            )
            return httpx.Response(
                201,
                json={"token": token, "expires_at": expires.strftime("%Y-%m-%dT%H:%M:%SZ")},
            )

        return httpx.Response(404, json={"message": "Not Found"})

    def _graphql(self, request: httpx.Request) -> httpx.Response:
        if self.graphql_status != 200:
            return httpx.Response(self.graphql_status, json={"message": "Bad credentials"})
        if self.graphql_errors:
            return httpx.Response(200, json={"data": None, "errors": self.graphql_errors})

        variables = json.loads(request.content)["variables"]
        owner, repo = variables["owner"], variables["repo"]
        repository = {
            "obj" + name[len("exp"):]: self.objects.get((owner, repo, expression))
            for name, expression in variables.items()
            if name.startswith("exp")
        }
        return httpx.Response(200, json={"data": {"repository": repository}})


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest_asyncio.fixture
async def http_client(github):
    client = httpx.AsyncClient(transport=httpx.MockTransport(github.handler))
    yield client
    await client.aclose()
