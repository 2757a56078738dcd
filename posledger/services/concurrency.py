# Overview: Transaction boundary, row locking and retry for ledger operations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

"""
Concurrency model:
- Every mutating operation is one unit of work: it either commits as a whole or
  is rolled back as a whole. Domain errors roll back and propagate unchanged.
- Rows that are read and then rewritten (products, sales, opnames) are loaded
  with SELECT ... FOR UPDATE (pessimistic). Products and headers also carry a
  version counter, so a lost update on a backend that ignores FOR UPDATE
  surfaces as StaleDataError and the unit of work is retried.
"""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serializes writers instead),
    but other DBs will honor it. populate_existing() refreshes rows already in
    the identity map with the locked values.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates.
    """
    if attempts is None:
        attempts = current_app.config.get("LOCK_RETRY_ATTEMPTS", 3)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise


def run_in_transaction(func, *, commit: bool = True):
    """
    Run `func` as one atomic unit of work.

    commit=False joins the caller's unit of work instead: the work is flushed
    but neither committed nor retried, so an orchestrator can compose several
    ledger operations and commit them together.
    """
    if not commit:
        result = func()
        db.session.flush()
        return result

    def _op():
        result = func()
        db.session.commit()
        return result

    return run_with_retry(_op)


def dialect_insert(model):
    """
    Dialect-specific INSERT construct supporting conflict clauses
    (ON CONFLICT for SQLite/PostgreSQL, ON DUPLICATE KEY for MySQL).
    """
    name = db.session.get_bind().dialect.name
    if name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name in ("mysql", "mariadb"):
        from sqlalchemy.dialects.mysql import insert
    else:
        raise NotImplementedError(f"upsert not supported for dialect {name}")
    return insert(model), name
