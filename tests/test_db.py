from unittest.mock import MagicMock

import pytest
from sqlalchemy.orm import configure_mappers

from repomirror.core.db import store_errors, upsert
from repomirror.core.errors import StoreError
from repomirror.models import CachedEntry, GitHubInstallationToken, GitHubUserToken, User


def test_upsert_rejects_unsupported_dialect():
    db = MagicMock()
    db.get_bind.return_value.dialect.name = "mysql"

    with pytest.raises(StoreError, match="mysql"):
        upsert(db, CachedEntry, [{"owner": "acme"}], index_elements=("owner",))
    db.execute.assert_not_called()


def test_upsert_without_rows_touches_nothing():
    db = MagicMock()

    upsert(db, CachedEntry, [], index_elements=("owner",))

    db.get_bind.assert_not_called()
    db.execute.assert_not_called()


def test_upsert_updates_listed_fields_on_conflict(db_session):
    row = {"installation_id": 7, "ciphertext": "a", "iv": "b", "expires_at": 1}
    upsert(db_session, GitHubInstallationToken, [row], index_elements=("installation_id",))
    upsert(
        db_session,
        GitHubInstallationToken,
        [dict(row, ciphertext="c", expires_at=2)],
        index_elements=("installation_id",),
        update_fields=("ciphertext", "expires_at"),
    )
    db_session.commit()

    [stored] = db_session.query(GitHubInstallationToken).all()
    assert (stored.ciphertext, stored.iv, stored.expires_at) == ("c", "b", 2)


def test_store_errors_passes_other_exceptions_through(db_session):
    with pytest.raises(KeyError):
        with store_errors(db_session, "do something"):
            raise KeyError("not a database error")


def test_user_tokens_are_looked_up_by_user_id_only():
    configure_mappers()

    assert not hasattr(User, "github_tokens")
    assert not hasattr(GitHubUserToken, "user")
