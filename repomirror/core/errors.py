# repomirror/core/errors.py
"""Errors surfaced by the tree cache and the token broker.

Everything derives from RepoMirrorError so callers can catch the whole family,
or pick out the authorization failures (NotAuthenticated, NotLinked,
NoActiveSubscription, NoPermission) to map onto 401/403 responses.
"""


class RepoMirrorError(RuntimeError):
    pass


class NotAuthenticated(RepoMirrorError):
    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class NotLinked(RepoMirrorError):
    def __init__(self, message: str = "User must be logged in with Github"):
        super().__init__(message)


class NotFound(RepoMirrorError):
    pass


class TokenNotFound(NotFound):
    pass


class InstallationNotFound(NotFound):
    pass


class DecryptionFailed(RepoMirrorError):
    def __init__(self, message: str = "Token could not be retrieved and/or decrypted."):
        super().__init__(message)


class NoActiveSubscription(RepoMirrorError):
    pass


class NoPermission(RepoMirrorError):
    pass


class RemoteQueryFailed(RepoMirrorError):
    """GitHub (REST or GraphQL) returned an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(RepoMirrorError):
    pass
