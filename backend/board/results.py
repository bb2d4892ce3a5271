"""Tagged results returned by the service layer.

Services never raise for expected outcomes (bad input, missing rows,
ownership, provider errors). They return ``Ok`` or one of the ``Failure``
subclasses and the HTTP layer turns failures into flash messages.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

T = TypeVar("T")

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "ユーザーが見つかりません"
ACCOUNT_INACTIVE = "このアカウントは無効化されています"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T = None


@dataclass(frozen=True)
class Failure:
    message: str


class Unauthenticated(Failure):
    pass


class AccountInactive(Failure):
    pass


class InvalidInput(Failure):
    pass


class NotFound(Failure):
    pass


class Forbidden(Failure):
    pass


class NotAReply(Failure):
    pass


class ProviderFailure(Failure):
    pass


class StoreFailure(Failure):
    pass


Result = Ok | Failure


def require_user(user) -> Failure | None:
    """Failure for an anonymous caller, or None."""
    if user is None:
        return Unauthenticated(USER_NOT_FOUND)
    return None


def require_active_user(user) -> Failure | None:
    """Failure for an anonymous or deactivated caller, or None."""
    if user is None:
        return Unauthenticated(USER_NOT_FOUND)
    if not user.is_active:
        return AccountInactive(ACCOUNT_INACTIVE)
    return None


def store_boundary(message: str):
    """Turn SQLAlchemy errors raised by a service into ``StoreFailure(message)``.

    The wrapped function must take the session as its first argument; it is
    rolled back before the failure is returned.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(db: Session, *args: Any, **kwargs: Any):
            try:
                return func(db, *args, **kwargs)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Store failure in %s", func.__name__)
                return StoreFailure(message)

        return wrapper

    return decorator
