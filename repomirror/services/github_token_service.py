# repomirror/services/github_token_service.py
"""
Issues the GitHub token a request should use for owner/repo.

Users who signed in with GitHub get their own OAuth token. Everyone else goes
through the GitHub App: the owner needs an active subscription, the user needs
a collaborator grant, and then an installation token is returned, minted and
re-encrypted when the stored one is within the expiry margin.

A TokenBroker memoizes its results for the lifetime of one request. Build a
new broker (or pass a fresh RequestCache) per request so expiry is re-checked.
"""

import logging
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from repomirror.core.config import settings
from repomirror.core.crypto import TokenCipher, get_cipher
from repomirror.core.db import store_errors, upsert
from repomirror.core.errors import (
    DecryptionFailed,
    InstallationNotFound,
    NoActiveSubscription,
    NoPermission,
    NotAuthenticated,
    NotLinked,
    TokenNotFound,
)
from repomirror.core.request_cache import RequestCache
from repomirror.github_client import GitHubAppClient
from repomirror.models import Collaborator, GitHubInstallationToken, GitHubUserToken, Subscription, User

logger = logging.getLogger(__name__)


class TokenBroker:
    def __init__(
        self,
        db: Session,
        current_user: Callable[[], Optional[User]],
        app_client: GitHubAppClient,
        cipher: TokenCipher,
        request_cache: RequestCache | None = None,
        expiry_margin: int | None = None,
    ):
        self.db = db
        self.current_user = current_user
        self.app_client = app_client
        self.cipher = cipher
        self.request_cache = request_cache if request_cache is not None else RequestCache()
        self.expiry_margin = settings.TOKEN_EXPIRY_MARGIN if expiry_margin is None else expiry_margin

    async def get_token(self, user: Optional[User], owner: str, repo: str) -> str:
        key = ("get_token", getattr(user, "id", None), getattr(user, "github_id", None), owner, repo)
        return await self.request_cache.get_or_compute(key, lambda: self._get_token(user, owner, repo))

    async def get_user_token(self) -> str:
        return await self.request_cache.get_or_compute(("get_user_token",), self._get_user_token)

    async def get_installation_token(self, owner: str, repo: str) -> str:
        return await self.request_cache.get_or_compute(
            ("get_installation_token", owner, repo),
            lambda: self._get_installation_token(owner, repo),
        )

    async def _get_token(self, user: Optional[User], owner: str, repo: str) -> str:
        if user is None:
            raise NotAuthenticated()
        if user.github_id:
            return await self.get_user_token()

        with store_errors(self.db, "look up subscription"):
            subscription = (
                self.db.query(Subscription)
                .filter(Subscription.owner == owner, Subscription.status == "active")
                .first()
            )
        if not subscription:
            raise NoActiveSubscription(f'No active subscription found for "{owner}".')

        with store_errors(self.db, "look up collaborator permission"):
            permission = (
                self.db.query(Collaborator)
                .filter(
                    Collaborator.user_id == user.id,
                    Collaborator.owner == owner,
                    Collaborator.repo == repo,
                )
                .first()
            )
        if not permission:
            raise NoPermission(f'You do not have permission to access "{owner}/{repo}".')

        return await self.get_installation_token(owner, repo)

    async def _get_user_token(self) -> str:
        user = self.current_user()
        if not user:
            raise NotAuthenticated()
        if not user.github_id:
            raise NotLinked()

        with store_errors(self.db, "look up user token"):
            token_data = self.db.query(GitHubUserToken).filter(GitHubUserToken.user_id == user.id).first()
        if not token_data:
            raise TokenNotFound(f"Token not found for user {user.id}.")

        token = self.cipher.decrypt(token_data.ciphertext, token_data.iv)
        if not token:
            raise DecryptionFailed()
        return token

    async def _get_installation_token(self, owner: str, repo: str) -> str:
        installation = await self.app_client.get_repo_installation(owner, repo)
        if not installation:
            raise InstallationNotFound(f'Installation token not found for "{owner}/{repo}".')
        installation_id = installation["id"]

        with store_errors(self.db, "look up installation token"):
            token_data = (
                self.db.query(GitHubInstallationToken)
                .filter(GitHubInstallationToken.installation_id == installation_id)
                .first()
            )

        if token_data and int(time.time()) < token_data.expires_at - self.expiry_margin:
            token = self.cipher.decrypt(token_data.ciphertext, token_data.iv)
            if not token:
                # stored ciphertext is corrupt or the key changed; do not paper over it with a new mint
                raise DecryptionFailed()
            return token

        token, expires_at = await self.app_client.create_installation_access_token(installation_id)
        ciphertext, iv = self.cipher.encrypt(token)

        with store_errors(self.db, "store installation token"):
            if token_data:
                token_data.ciphertext = ciphertext
                token_data.iv = iv
                token_data.expires_at = expires_at
            else:
                # another request may have inserted the row since we looked
                upsert(
                    self.db,
                    GitHubInstallationToken,
                    [{
                        "installation_id": installation_id,
                        "ciphertext": ciphertext,
                        "iv": iv,
                        "expires_at": expires_at,
                    }],
                    index_elements=("installation_id",),
                    update_fields=("ciphertext", "iv", "expires_at"),
                )
            self.db.commit()

        logger.info(
            "%s installation token for %s/%s (installation %s)",
            "Renewed" if token_data else "Minted", owner, repo, installation_id,
        )
        return token


def build_token_broker(
    db: Session,
    current_user: Callable[[], Optional[User]],
    request_cache: RequestCache | None = None,
) -> TokenBroker:
    """Broker wired to the GitHub App and encryption key from settings."""
    return TokenBroker(
        db,
        current_user,
        app_client=GitHubAppClient.from_settings(),
        cipher=get_cipher(),
        request_cache=request_cache,
    )
