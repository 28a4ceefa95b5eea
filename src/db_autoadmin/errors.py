"""Error taxonomy and database constraint translation.

Every error raised by the engine derives from ``AdminError`` and carries an
HTTP-style ``status_code`` so an outer transport layer can map it directly.

- Configuration errors (``ConfigurationError``, ``SchemaError``) are setup
  bugs.  They propagate unmodified and are never recovered per request.
- Client errors (``BadRequestError``, ``ModelNotFoundError``, ...) are 4xx.
- Constraint violations are translated at the failing statement by
  ``translate_db_error()``.
- Unknown database errors are logged with code and message and surfaced as a
  generic ``DatabaseError``.

Usage:
    from db_autoadmin.errors import translate_db_error

    try:
        await conn.execute(stmt)
    except DBAPIError as e:
        raise translate_db_error(e) from e
"""

import logging
from typing import Any

from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)

UNIQUE_CODES = {"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY", "23505", "1062"}
FOREIGN_KEY_CODES = {"SQLITE_CONSTRAINT_FOREIGNKEY", "23503", "1451", "1452"}
NOT_NULL_CODES = {"SQLITE_CONSTRAINT_NOTNULL", "23502", "1048"}


class AdminError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        errors: list[dict[str, Any]] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Response body for an outer transport layer."""
        body: dict[str, Any] = {"statusCode": self.status_code, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ConfigurationError(AdminError):
    """Invalid model configuration (lookup column, relation, filter type)."""


class SchemaError(ConfigurationError):
    """Table definition cannot be used (no columns, ambiguous primary key)."""


class BadRequestError(AdminError):
    """Invalid client input: missing parameter, bad filter value, unknown action."""

    status_code = 400


class ModelNotFoundError(AdminError):
    """No model registered under the requested key."""

    status_code = 404


class OperationNotAllowedError(AdminError):
    """Operation disabled for the model (e.g. create disabled)."""

    status_code = 404


class RecordNotFoundError(AdminError):
    """No row matches the lookup value."""

    status_code = 404


class RecordValidationError(AdminError):
    """Submitted data does not validate against the table's write model."""

    status_code = 400


class ConstraintViolationError(AdminError):
    """Unique or foreign key constraint violated by a write."""

    status_code = 400


class RelationConstraintError(ConstraintViolationError):
    """A one-to-many child cannot be detached because its FK is required."""


class DatabaseError(AdminError):
    """Unexpected database failure; message never leaks internals."""


# ============================================================================
# Constraint translation
# ============================================================================


def error_code(error: BaseException) -> str | None:
    """Extract a driver error code from a SQLAlchemy or DBAPI exception.

    SQLite exposes ``sqlite_errorname`` (``SQLITE_CONSTRAINT_UNIQUE``),
    asyncpg and psycopg expose the SQLSTATE as ``sqlstate`` / ``pgcode``.
    """
    orig = getattr(error, "orig", None) or error
    for attr in ("sqlite_errorname", "sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return str(args[0])
    return None


def error_message(error: BaseException) -> str:
    orig = getattr(error, "orig", None) or error
    return str(orig)


def is_not_null_violation(error: BaseException) -> bool:
    """True when the error is a NOT NULL constraint failure."""
    code = error_code(error)
    if code in NOT_NULL_CODES:
        return True
    message = error_message(error)
    return "NOT NULL constraint failed" in message or "not-null constraint" in message


def _unique_details(message: str) -> tuple[str, str]:
    """Pull ``(table, column)`` out of a unique violation message.

    SQLite: ``UNIQUE constraint failed: tags.name``
    PostgreSQL: ``... DETAIL:  Key (name)=(Tag 1) already exists.``
    """
    if "constraint failed:" in message:
        target = message.split("constraint failed:")[-1].strip().split(",")[0].strip()
        table, _, column = target.partition(".")
        return table, column
    if "Key (" in message:
        column = message.split("Key (", 1)[1].split(")", 1)[0]
        table = ""
        if 'relation "' in message:
            table = message.split('relation "', 1)[1].split('"', 1)[0]
        return table, column
    return "", ""


def translate_db_error(error: BaseException, operation: str = "write") -> AdminError:
    """Translate a database exception into a user-facing ``AdminError``.

    Careful: unique-violation messages expose table and column names.

    Args:
        error: Exception raised while executing a statement.
        operation: ``"delete"`` or ``"write"``; picks the foreign key message.

    Returns:
        ``ConstraintViolationError`` for unique / foreign key violations,
        ``DatabaseError`` otherwise.  Already-translated ``AdminError``
        instances are returned unchanged.
    """
    if isinstance(error, AdminError):
        return error

    code = error_code(error)
    message = error_message(error)

    if code in UNIQUE_CODES or "UNIQUE constraint failed" in message or "duplicate key" in message:
        table, column = _unique_details(message)
        if table and column:
            user_message = f"One of the {table} with this {column} already exists."
        else:
            user_message = "Operation failed"
        return ConstraintViolationError(
            user_message,
            errors=[{"name": column, "message": "This value must be unique but is already in use."}],
        )

    if code in FOREIGN_KEY_CODES or "FOREIGN KEY constraint failed" in message:
        if operation == "delete":
            return ConstraintViolationError(
                "Cannot delete record because it is referenced by another record"
            )
        return ConstraintViolationError("Cannot save record because a related record does not exist")

    logger.error(
        "Database error: code=%s message=%s",
        code or "UNKNOWN",
        message,
        exc_info=error if isinstance(error, DBAPIError) else None,
    )
    return DatabaseError("A database error occurred")
