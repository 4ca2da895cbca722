# repomirror/models/cached_entry.py
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Text, Index, UniqueConstraint
from repomirror.core.db import Base


def utcnow():
    return datetime.now(timezone.utc)


class CachedEntry(Base):
    """One node of a mirrored GitHub tree.

    Rows sharing (owner, repo, branch, parent_path) are the complete listing
    of that directory: a directory is either fully cached or not at all.
    """

    __tablename__ = "cached_entries"

    id = Column(Integer, primary_key=True, index=True)

    owner = Column(String, nullable=False)
    repo = Column(String, nullable=False)
    branch = Column(String, nullable=False)

    path = Column(String, nullable=False)                    # "src/app/page.tsx"
    parent_path = Column(String, nullable=False)             # "src/app", "" for the root
    name = Column(String, nullable=False)                    # "page.tsx"
    type = Column(String, nullable=False)                    # "blob" or "tree"

    content = Column(Text, nullable=True)                    # blobs only, None for binary files
    sha = Column(String, nullable=True)                      # blobs only

    last_updated = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner", "repo", "branch", "path", name="uq_cached_entries_path"),
        Index("ix_cached_entries_parent", "owner", "repo", "branch", "parent_path"),
    )

    def __repr__(self):
        return f"<CachedEntry {self.owner}/{self.repo}@{self.branch}:{self.path} ({self.type})>"
