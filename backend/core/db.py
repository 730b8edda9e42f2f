"""
Transaction scope and retry helpers shared by every module that mutates stock.

``Transaction`` is the unit of work handed to ledger steps: it owns one
``transaction.atomic`` block, so the work is rolled back on every exit path that
raises, and it is the only way those steps get at locked rows.

``RetryPolicy`` re-runs a whole unit of work when the database reports lock
contention (lock wait timeout, deadlock, serialization failure).
"""
import logging
import time

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, DatabaseError, OperationalError, transaction

logger = logging.getLogger(__name__)

# MySQL: ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK
MYSQL_TRANSIENT_CODES = {1205, 1213}
# PostgreSQL SQLSTATE: lock_not_available, deadlock_detected, serialization_failure
POSTGRES_TRANSIENT_STATES = {'55P03', '40P01', '40001'}


def _error_chain(exc):
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def is_transient_db_error(exc):
    """True when ``exc`` is a lock-wait-timeout class error worth retrying."""
    if not isinstance(exc, DatabaseError):
        return False
    for error in _error_chain(exc):
        if error.args and isinstance(error.args[0], int) and error.args[0] in MYSQL_TRANSIENT_CODES:
            return True
        sqlstate = getattr(error, 'pgcode', None) or getattr(error, 'sqlstate', None)
        if sqlstate in POSTGRES_TRANSIENT_STATES:
            return True
        if isinstance(error, OperationalError) and 'database is locked' in str(error).lower():
            return True
    return False


class Transaction:
    """
    Scoped database transaction.

    Usage::

        with Transaction() as tx:
            stock = tx.locked(StockItem).get(sku=sku)
            ...

    Nested use joins the outer transaction through a savepoint, exactly like
    ``transaction.atomic``.
    """

    def __init__(self, using=None):
        self.using = using or DEFAULT_DB_ALIAS
        self._atomic = None

    def __enter__(self):
        if self._atomic is not None:
            raise RuntimeError("Transaction is already active")
        self._atomic = transaction.atomic(using=self.using)
        self._atomic.__enter__()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        atomic, self._atomic = self._atomic, None
        return atomic.__exit__(exc_type, exc_value, traceback)

    @property
    def active(self):
        return self._atomic is not None

    def _require_active(self):
        if self._atomic is None:
            raise RuntimeError("Transaction used outside of its 'with' block")

    def objects(self, model):
        """Plain manager for ``model`` bound to this transaction's database."""
        self._require_active()
        return model._default_manager.using(self.using)

    def locked(self, model):
        """Queryset over ``model`` whose rows are locked (SELECT ... FOR UPDATE) when read."""
        return self.objects(model).select_for_update()

    def on_commit(self, func):
        """Run ``func`` once the outermost transaction commits; dropped on rollback."""
        self._require_active()
        transaction.on_commit(func, using=self.using)


class RetryPolicy:
    """
    Re-run a callable while it fails with a retryable database error.

    ``max_attempts`` counts the first call. ``retryable`` decides which
    ``DatabaseError`` instances are worth another attempt; anything else, or the
    last failed attempt, is re-raised unchanged.
    """

    def __init__(self, max_attempts=3, retryable=is_transient_db_error, backoff=0.0, name='operation'):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.retryable = retryable
        self.backoff = backoff
        self.name = name

    def __repr__(self):
        return f"RetryPolicy(name={self.name!r}, max_attempts={self.max_attempts}, backoff={self.backoff})"

    def call(self, func, *args, **kwargs):
        attempt = 1
        while True:
            try:
                return func(*args, **kwargs)
            except DatabaseError as exc:
                if attempt >= self.max_attempts or not self.retryable(exc):
                    if attempt > 1:
                        logger.error(f"{self.name}: giving up after {attempt} attempts ({exc.__class__.__name__})")
                    raise
                logger.warning(
                    f"{self.name}: transient database error, retrying "
                    f"({attempt}/{self.max_attempts}): {exc}"
                )
                if self.backoff:
                    time.sleep(self.backoff * attempt)
                attempt += 1


SINGLE_ATTEMPT = RetryPolicy(max_attempts=1, name='single attempt')


def bulk_retry_policy(name='bulk create'):
    """Retry policy for bulk shipment batches, configured from settings."""
    return RetryPolicy(
        max_attempts=getattr(settings, 'SHIPMENT_BULK_MAX_ATTEMPTS', 3),
        backoff=getattr(settings, 'SHIPMENT_RETRY_BACKOFF_SECONDS', 0.0),
        name=name,
    )
