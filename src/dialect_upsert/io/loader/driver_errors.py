"""
Classification of SQLAlchemy / DB-API exceptions.

Lost connections end the run; everything else raised by a statement is a
failure of the records it touched.
"""

from typing import Optional, Tuple

from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError

from dialect_upsert.io.loader.models import BATCH_FAILURE_STATUS_CODE


def is_connectivity_error(exc: BaseException) -> bool:
    """True for invalidated connections, disconnects and interface errors."""
    if isinstance(exc, DisconnectionError):
        return True
    if isinstance(exc, DBAPIError):
        return bool(exc.connection_invalidated) or isinstance(exc, InterfaceError)
    return False


def driver_error_details(exc: BaseException) -> Tuple[str, str]:
    """
    Extract the driver's own message and error code from an exception.

    The message is returned unmodified, without SQLAlchemy's statement and
    parameter decoration. Drivers report codes differently: psycopg2 exposes
    ``pgcode``, PyMySQL puts ``(errno, message)`` in ``args`` and sqlite3
    exposes ``sqlite_errorcode``. Without a code the batch failure code is
    used.

    Returns:
        Tuple of (message, status code)
    """
    orig = getattr(exc, "orig", None) or exc
    code: Optional[str] = None

    pgcode = getattr(orig, "pgcode", None)
    if pgcode:
        code = str(pgcode)
    sqlite_code = getattr(orig, "sqlite_errorcode", None)
    if code is None and sqlite_code is not None:
        code = str(sqlite_code)

    args = getattr(orig, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        code = code or str(args[0])
        message = str(args[1])
    else:
        message = str(orig)

    return message.strip(), code or BATCH_FAILURE_STATUS_CODE
