# repomirror/models/collaborator.py
from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from repomirror.core.db import Base

class Collaborator(Base):
    """Grants a user access to owner/repo through the GitHub App installation."""

    __tablename__ = "collaborators"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    owner = Column(String, nullable=False)
    repo = Column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "owner", "repo", name="uq_collaborators_user_repo"),
    )
