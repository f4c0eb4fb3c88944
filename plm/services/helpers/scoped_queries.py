"""
Query helpers shared by the services.

Every get-by-id in ``plm.services`` goes through ``get_scoped`` so that a
missing row always surfaces as ``NotFoundError`` and so that callers that
are about to mutate a row can take its lock in the same statement.

Usage:
    part = get_scoped(Part, part_id)
    order = get_scoped(ChangeOrder, co_id, for_update=True)
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from plm.core.exceptions import ConflictError, NotFoundError
from plm.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk, *, for_update: bool = False):
    """Fetch a single entity by PK.

    With ``for_update=True`` the row is read with ``SELECT … FOR UPDATE``
    and refreshed, so concurrent writers on the same row serialize behind
    this transaction (no-op on SQLite, which serializes writers itself).

    Raises:
        NotFoundError: The entity does not exist.
    """
    stmt = select(model).where(model.id == pk)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found", model.__name__, pk)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result


def commit_or_conflict(resource: str, field: str = "version", value=None) -> None:
    """Commit the session, translating lost races into ``ConflictError``.

    A ``StaleDataError`` means another transaction bumped the row version
    after we read it; an ``IntegrityError`` means a unique constraint caught
    a concurrent duplicate. Either way the session is rolled back first.
    """
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        logger.warning("Concurrent modification of %s", resource)
        raise ConflictError(resource, "version") from None
    except IntegrityError:
        db.session.rollback()
        logger.warning("Unique constraint violated on %s.%s=%r", resource, field, value)
        raise ConflictError(resource, field, value) from None
