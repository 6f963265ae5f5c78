from __future__ import annotations

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError, constraint: str | None = None) -> bool:
    """
    True when `exc` is a unique violation, optionally on a specific constraint.

    asyncpg exposes sqlstate/constraint_name on the driver exception, which
    SQLAlchemy keeps as `orig` (and its `__cause__`). The message text is the
    last resort for drivers that only report the constraint there.
    """
    orig = getattr(exc, "orig", None)
    driver_exc = getattr(orig, "__cause__", None) or orig

    sqlstate = (
        getattr(orig, "sqlstate", None)
        or getattr(orig, "pgcode", None)
        or getattr(driver_exc, "sqlstate", None)
    )
    if sqlstate is not None and sqlstate != UNIQUE_VIOLATION:
        return False

    if constraint is None:
        return sqlstate == UNIQUE_VIOLATION or "unique" in str(exc).lower()

    constraint_name = getattr(driver_exc, "constraint_name", None)
    if constraint_name is not None:
        return constraint_name == constraint
    return constraint in str(exc)
