# repomirror/github_client.py
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence, Union

import httpx
import jwt

from repomirror.core.config import settings
from repomirror.core.errors import RemoteQueryFailed

logger = logging.getLogger(__name__)


@dataclass
class BlobContent:
    text: str | None        # None for binary blobs
    oid: str


@dataclass
class TreeEntry:
    name: str
    path: str
    type: str               # "blob", "tree" or "commit" (submodule)
    blob: BlobContent | None = None


@dataclass
class ObjectQuery:
    index: int
    expression: str         # "<branch>:<path>"


@dataclass
class ObjectResult:
    """What one ObjectQuery resolved to. Neither tree nor blob means nothing matched."""

    index: int
    tree: list[TreeEntry] | None = None
    blob: BlobContent | None = None


def object_expression(branch: str, path: str) -> str:
    return f"{branch}:{path}"


# Fields selected for every aliased object(expression:) lookup. A tree brings
# the text of its blob children along so listings need no follow-up calls.
_OBJECT_SELECTION = """
      ... on Tree {
        entries {
          name
          path
          type
          object {
            ... on Blob {
              text
              oid
            }
          }
        }
      }
      ... on Blob {
        text
        oid
      }
"""


def build_objects_query(queries: Sequence[ObjectQuery]) -> str:
    variable_defs = "".join(f", $exp{q.index}: String!" for q in queries)
    fields = "\n".join(
        f"    obj{q.index}: object(expression: $exp{q.index}) {{{_OBJECT_SELECTION}    }}"
        for q in queries
    )
    return (
        f"query($owner: String!, $repo: String!{variable_defs}) {{\n"
        f"  repository(owner: $owner, name: $repo) {{\n{fields}\n  }}\n}}"
    )


def _parse_blob(data: dict | None) -> BlobContent | None:
    if not data or "oid" not in data:
        return None
    return BlobContent(text=data.get("text"), oid=data["oid"])


def _parse_object(index: int, data: dict | None) -> ObjectResult:
    if not data:
        return ObjectResult(index=index)
    if "entries" in data:
        entries = [
            TreeEntry(
                name=e["name"],
                path=e["path"],
                type=e["type"],
                blob=_parse_blob(e.get("object")) if e["type"] == "blob" else None,
            )
            for e in data["entries"] or []
        ]
        return ObjectResult(index=index, tree=entries)
    return ObjectResult(index=index, blob=_parse_blob(data))


def _error_detail(resp: httpx.Response):
    try:
        return resp.json()
    except ValueError:
        return resp.text


def _json_object(resp: httpx.Response, what: str) -> dict:
    """Decode a success body that must be a JSON object."""
    try:
        data = resp.json()
    except ValueError as e:
        raise RemoteQueryFailed(
            f"GitHub returned a malformed {what} response: {resp.text[:200]!r}",
            status_code=resp.status_code,
        ) from e
    if not isinstance(data, dict):
        raise RemoteQueryFailed(
            f"GitHub returned a malformed {what} response: {data!r}",
            status_code=resp.status_code,
        )
    return data


class GitHubClient:
    def __init__(self, client_or_token: Union[httpx.AsyncClient, str]):
        self.base_url = settings.GITHUB_API_URL.rstrip("/")

        # If caller passed an AsyncClient, reuse it (tests and long-lived workers do this).
        if isinstance(client_or_token, httpx.AsyncClient):
            self.client = client_or_token
            self.headers = getattr(self.client, "headers", None)
        else:
            # If caller passed a token string, build headers and use ad-hoc clients.
            self.client = None
            access_token = str(client_or_token)
            self.headers = {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/vnd.github+json",
            }

    async def _request(self, method: str, url: str, **kwargs):
        """Internal helper that uses either the provided client or a temporary one."""
        if self.client:
            resp = await self.client.request(method, url, **kwargs)
        else:
            async with httpx.AsyncClient(headers=self.headers, timeout=settings.GITHUB_TIMEOUT) as client:
                resp = await client.request(method, url, **kwargs)
        resp.raise_for_status()
        return resp

    async def graphql(self, query: str, variables: dict) -> dict:
        """Run a GraphQL query and return its `data` payload."""
        try:
            resp = await self._request(
                "POST",
                f"{self.base_url}/graphql",
                json={"query": query, "variables": variables},
            )
        except httpx.HTTPStatusError as e:
            resp = e.response
            raise RemoteQueryFailed(
                f"GitHub GraphQL error: {resp.status_code} - {_error_detail(resp)}",
                status_code=resp.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise RemoteQueryFailed(f"GitHub GraphQL request failed: {e}") from e

        payload = _json_object(resp, "GraphQL")
        if payload.get("errors"):
            messages = "; ".join(err.get("message", str(err)) for err in payload["errors"])
            raise RemoteQueryFailed(f"GitHub GraphQL error: {messages}")
        return payload.get("data") or {}

    async def fetch_objects(self, owner: str, repo: str, queries: Sequence[ObjectQuery]) -> list[ObjectResult]:
        """Resolve every query in one GraphQL round trip.

        Results come back in the order of `queries`, matched by index.
        """
        if not queries:
            return []
        indexes = [q.index for q in queries]
        if len(set(indexes)) != len(indexes):
            raise ValueError("ObjectQuery indexes must be unique")

        variables = {"owner": owner, "repo": repo}
        variables.update({f"exp{q.index}": q.expression for q in queries})

        logger.debug("Fetching %d objects from %s/%s", len(queries), owner, repo)
        data = await self.graphql(build_objects_query(queries), variables)

        repository = data.get("repository")
        if repository is None:
            raise RemoteQueryFailed(f'Repository "{owner}/{repo}" not found or not accessible.')

        try:
            return [_parse_object(q.index, repository.get(f"obj{q.index}")) for q in queries]
        except (AttributeError, KeyError, TypeError) as e:
            raise RemoteQueryFailed(f"Unexpected GraphQL object payload for {owner}/{repo}: {e!r}") from e


class GitHubAppClient:
    """REST calls made as the GitHub App itself (authenticated with a signed JWT)."""

    def __init__(
        self,
        app_id: str,
        private_key: str,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = settings.GITHUB_API_URL.rstrip("/")
        self.app_id = str(app_id)
        self.private_key = private_key
        self.client = client

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient | None = None) -> "GitHubAppClient":
        if not settings.GITHUB_APP_ID or not settings.GITHUB_APP_PRIVATE_KEY:
            raise ValueError("GITHUB_APP_ID and GITHUB_APP_PRIVATE_KEY must be set")
        # .env files usually carry the PEM on one line with escaped newlines
        private_key = settings.GITHUB_APP_PRIVATE_KEY.replace("\\n", "\n")
        return cls(settings.GITHUB_APP_ID, private_key, client=client)

    def app_jwt(self) -> str:
        now = int(time.time())
        # iat is backdated to allow for clock drift; GitHub caps exp at 10 minutes
        payload = {"iat": now - 60, "exp": now + 9 * 60, "iss": self.app_id}
        return jwt.encode(payload, self.private_key, algorithm="RS256")

    async def _send(self, method: str, path: str) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.app_jwt()}",
            "Accept": "application/vnd.github+json",
        }
        url = f"{self.base_url}{path}"
        try:
            if self.client:
                return await self.client.request(method, url, headers=headers)
            async with httpx.AsyncClient(timeout=settings.GITHUB_TIMEOUT) as client:
                return await client.request(method, url, headers=headers)
        except httpx.HTTPError as e:
            raise RemoteQueryFailed(f"GitHub API request failed: {e}") from e

    async def get_repo_installation(self, owner: str, repo: str) -> dict | None:
        """Installation of this app on owner/repo, or None if it is not installed there."""
        resp = await self._send("GET", f"/repos/{owner}/{repo}/installation")
        if resp.status_code == 404:
            return None
        if resp.is_error:
            raise RemoteQueryFailed(
                f"GitHub API error looking up installation for {owner}/{repo}: "
                f"{resp.status_code} - {_error_detail(resp)}",
                status_code=resp.status_code,
            )
        installation = _json_object(resp, "installation")
        if "id" not in installation:
            raise RemoteQueryFailed(
                f"GitHub installation response for {owner}/{repo} has no id",
                status_code=resp.status_code,
            )
        return installation

    async def create_installation_access_token(self, installation_id: int) -> tuple[str, int]:
        """Mint a fresh installation token. Returns (token, expires_at epoch seconds)."""
        resp = await self._send("POST", f"/app/installations/{installation_id}/access_tokens")
        if resp.is_error:
            raise RemoteQueryFailed(
                f"GitHub API error creating installation token: "
                f"{resp.status_code} - {_error_detail(resp)}",
                status_code=resp.status_code,
            )
        data = _json_object(resp, "installation token")
        try:
            token = data["token"]
            expires_at = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00"))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RemoteQueryFailed(
                f"GitHub installation token response is missing token or expires_at: {e!r}",
                status_code=resp.status_code,
            ) from e
        return token, int(expires_at.timestamp())
