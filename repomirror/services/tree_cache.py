# repomirror/services/tree_cache.py
"""
Directory-scoped cache of GitHub trees.

A directory is the unit of caching: once any entry with a given parent_path
exists, the rows under that parent_path are the whole listing. Change sets
are only applied to directories that are already cached, and every remote
read is a single batched GraphQL query.
"""

import logging
import posixpath
from dataclasses import dataclass
from typing import Callable, Sequence

from sqlalchemy.orm import Session

from repomirror.core.db import store_errors, upsert
from repomirror.core.errors import RemoteQueryFailed
from repomirror.github_client import GitHubClient, ObjectQuery, object_expression
from repomirror.models import CachedEntry
from repomirror.models.cached_entry import utcnow

logger = logging.getLogger(__name__)

ENTRY_KEY = ("owner", "repo", "branch", "path")
BLOB_FIELDS = ("content", "sha", "last_updated")


@dataclass(frozen=True)
class FileChange:
    path: str
    sha: str | None = None      # target blob sha, unknown for removals


def normalize_path(path: str) -> str:
    return path.strip("/")


def parent_path(path: str) -> str:
    """Directory holding `path` in the remote tree; "" is the repository root."""
    return posixpath.dirname(normalize_path(path))


def base_name(path: str) -> str:
    return posixpath.basename(normalize_path(path))


class TreeCache:
    def __init__(self, db: Session, client_factory: Callable[..., GitHubClient] = GitHubClient):
        self.db = db
        self.client_factory = client_factory

    def _in_namespace(self, owner: str, repo: str, branch: str):
        return (
            CachedEntry.owner == owner,
            CachedEntry.repo == repo,
            CachedEntry.branch == branch,
        )

    def _listing(self, owner: str, repo: str, branch: str, path: str) -> list[CachedEntry]:
        return (
            self.db.query(CachedEntry)
            .filter(*self._in_namespace(owner, repo, branch), CachedEntry.parent_path == path)
            .order_by(CachedEntry.path)
            .all()
        )

    async def populate_directory(self, owner: str, repo: str, branch: str, path: str, token) -> list[CachedEntry]:
        """Return the listing of `path`, fetching and caching it on first access.

        An empty result is not cached: git has no empty directories, so zero
        entries means the path is missing or is not a directory.
        """
        path = normalize_path(path)

        with store_errors(self.db, f"read cached listing of {path!r}"):
            entries = self._listing(owner, repo, branch, path)
        if entries:
            logger.debug("Cache hit for %s/%s@%s:%s (%d entries)", owner, repo, branch, path, len(entries))
            return entries

        client = self.client_factory(token)
        [result] = await client.fetch_objects(
            owner, repo, [ObjectQuery(index=0, expression=object_expression(branch, path))]
        )
        if not result.tree:
            logger.debug("Nothing to cache for %s/%s@%s:%s", owner, repo, branch, path)
            return []

        now = utcnow()
        rows = [
            {
                "owner": owner,
                "repo": repo,
                "branch": branch,
                "path": entry.path,
                "parent_path": path,
                "name": entry.name,
                "type": entry.type,
                "content": entry.blob.text if entry.blob else None,
                "sha": entry.blob.oid if entry.blob else None,
                "last_updated": now,
            }
            for entry in result.tree
        ]

        with store_errors(self.db, f"cache listing of {path!r}"):
            # a concurrent populate may have inserted the same rows already
            upsert(self.db, CachedEntry, rows, index_elements=ENTRY_KEY)
            self.db.commit()
            entries = self._listing(owner, repo, branch, path)

        logger.info("Cached %d entries for %s/%s@%s:%s", len(entries), owner, repo, branch, path)
        return entries

    async def reconcile(
        self,
        owner: str,
        repo: str,
        branch: str,
        removed: Sequence[FileChange],
        modified: Sequence[FileChange],
        added: Sequence[FileChange],
        token,
    ) -> None:
        """Apply a change set to the directories that are already cached.

        Removals are committed before anything is fetched. Modified and added
        files are fetched in one batched query and written only if the whole
        query succeeds.
        """
        ns = self._in_namespace(owner, repo, branch)
        touched = {parent_path(change.path) for change in [*removed, *modified, *added]}
        if not touched:
            return

        with store_errors(self.db, "look up cached directories"):
            cached_dirs = {
                row[0]
                for row in self.db.query(CachedEntry.parent_path)
                .filter(*ns, CachedEntry.parent_path.in_(touched))
                .distinct()
            }

        def is_cached(change: FileChange) -> bool:
            return parent_path(change.path) in cached_dirs

        to_remove = [normalize_path(c.path) for c in removed if is_cached(c)]
        if to_remove:
            with store_errors(self.db, "remove cached entries"):
                self.db.query(CachedEntry).filter(*ns, CachedEntry.path.in_(to_remove)).delete()
                self.db.commit()
            logger.debug("Removed %d cached entries from %s/%s@%s", len(to_remove), owner, repo, branch)

        to_modify = list(dict.fromkeys(normalize_path(c.path) for c in modified if is_cached(c)))
        to_add = [
            p for p in dict.fromkeys(normalize_path(c.path) for c in added if is_cached(c))
            if p not in to_modify
        ]
        to_fetch = to_modify + to_add
        if not to_fetch:
            return

        client = self.client_factory(token)
        results = await client.fetch_objects(
            owner,
            repo,
            [ObjectQuery(index=i, expression=object_expression(branch, p)) for i, p in enumerate(to_fetch)],
        )

        blobs = {}
        for p, result in zip(to_fetch, results):
            if result.blob is None:
                raise RemoteQueryFailed(f'"{branch}:{p}" did not resolve to a file in {owner}/{repo}.')
            blobs[p] = result.blob

        now = utcnow()
        # a modified path missing from the cached listing is inserted
        with store_errors(self.db, "apply change set"):
            upsert(
                self.db,
                CachedEntry,
                [
                    {
                        "owner": owner,
                        "repo": repo,
                        "branch": branch,
                        "path": p,
                        "parent_path": parent_path(p),
                        "name": base_name(p),
                        "type": "blob",
                        "content": blobs[p].text,
                        "sha": blobs[p].oid,
                        "last_updated": now,
                    }
                    for p in to_fetch
                ],
                index_elements=ENTRY_KEY,
                update_fields=BLOB_FIELDS,
            )
            self.db.commit()
        # the upsert bypasses the identity map
        self.db.expire_all()

        logger.info(
            "Reconciled %s/%s@%s: %d removed, %d modified, %d added",
            owner, repo, branch, len(to_remove), len(to_modify), len(to_add),
        )
