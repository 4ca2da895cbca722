# repomirror/models/github_token.py
from sqlalchemy import Column, Integer, BigInteger, String, ForeignKey
from repomirror.core.db import Base


class GitHubUserToken(Base):
    """Encrypted personal GitHub token. Provisioned by the OAuth login flow, read-only here."""

    __tablename__ = "github_user_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True)
    ciphertext = Column(String, nullable=False)
    iv = Column(String, nullable=False)


class GitHubInstallationToken(Base):
    """Encrypted GitHub App installation token, one row per installation."""

    __tablename__ = "github_installation_tokens"

    id = Column(Integer, primary_key=True, index=True)
    installation_id = Column(BigInteger, unique=True, nullable=False, index=True)
    ciphertext = Column(String, nullable=False)
    iv = Column(String, nullable=False)
    expires_at = Column(Integer, nullable=False)      # epoch seconds
