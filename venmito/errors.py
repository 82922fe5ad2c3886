# venmito/errors.py
from __future__ import annotations

from sqlalchemy.exc import (
    DBAPIError, InterfaceError, InternalError, OperationalError, SQLAlchemyError,
)

# Errors a single row (or a single device / line item) may raise without
# taking the whole batch down with it.
RECOVERABLE_ERRORS = (SQLAlchemyError, ValueError, TypeError, ArithmeticError, LookupError)


class UploadParseError(ValueError):
    """An uploaded file could not be turned into records."""


class UnknownFamilyError(LookupError):
    """No reconciler is registered for the requested entity family."""


def is_fatal(exc: BaseException) -> bool:
    """
    True for storage failures that must abort the batch: lost connections,
    operational and interface errors. Integrity/data errors stay row-level.
    """
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (OperationalError, InterfaceError, InternalError))
