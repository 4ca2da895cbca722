# repomirror/core/db.py
import logging
from contextlib import contextmanager
from typing import Iterable, Sequence

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base

from repomirror.core.config import settings
from repomirror.core.errors import StoreError

logger = logging.getLogger(__name__)

# SQLAlchemy Base class (for our models)
Base = declarative_base()

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)


def init_db(bind=None):
    # make sure every model is registered on Base before creating tables
    import repomirror.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def store_errors(db: Session, action: str):
    """Roll back and re-raise database failures as StoreError."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Store failure while trying to %s: %s", action, e)
        raise StoreError(f"Failed to {action}: {e}") from e


def upsert(
    db: Session,
    model,
    rows: Sequence[dict],
    index_elements: Iterable[str],
    update_fields: Iterable[str] = (),
):
    """INSERT ... ON CONFLICT for SQLite and PostgreSQL.

    With no update_fields a conflicting row is left alone (insert-or-ignore),
    otherwise the listed columns are overwritten (last writer wins).
    Does not commit.
    """
    if not rows:
        return

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise StoreError(f"upsert is not supported for the {dialect!r} dialect")

    stmt = insert(model).values(list(rows))
    update_fields = list(update_fields)
    if update_fields:
        stmt = stmt.on_conflict_do_update(
            index_elements=list(index_elements),
            set_={field: stmt.excluded[field] for field in update_fields},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(index_elements))
    db.execute(stmt)
