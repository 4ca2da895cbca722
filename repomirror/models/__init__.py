# repomirror/models/__init__.py
from repomirror.models.user import User
from repomirror.models.github_token import GitHubUserToken, GitHubInstallationToken
from repomirror.models.cached_entry import CachedEntry
from repomirror.models.subscription import Subscription
from repomirror.models.collaborator import Collaborator

__all__ = [
    "User",
    "GitHubUserToken",
    "GitHubInstallationToken",
    "CachedEntry",
    "Subscription",
    "Collaborator",
]
