import functools
import logging
import threading
import weakref
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from . import db
from .errors import StorageFailure
from .models import (
    Component, InstallationSession, InstallationLog,
    SESSION_COMPLETED, LOG_INSTALLED, LOG_SEQUENCE_ERROR,
)

logger = logging.getLogger(__name__)


def _storage(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("%s failed: %s", fn.__name__, e)
            raise StorageFailure(str(e)) from e
    return wrapper


class SessionStore:
    # writes only flush; the validator commits once per operation

    @_storage
    def find_component_by_part_number(self, code):
        return Component.query.filter_by(part_number=code).first()

    @_storage
    def find_component(self, component_id):
        return db.session.get(Component, component_id)

    @_storage
    def find_session(self, session_id):
        return db.session.get(InstallationSession, session_id)

    @_storage
    def find_log(self, session_id, component_id):
        return InstallationLog.query.filter_by(session_id=session_id, component_id=component_id).first()

    @_storage
    def find_last_installed(self, session_id):
        return (InstallationLog.query
                .filter_by(session_id=session_id, status=LOG_INSTALLED)
                .order_by(InstallationLog.sequence_order.desc())
                .first())

    @_storage
    def count_sequence_errors(self, session_id):
        return InstallationLog.query.filter_by(session_id=session_id, status=LOG_SEQUENCE_ERROR).count()

    @_storage
    def append_log(self, session_id, component_id, status, message, seq_order, scan_time=None):
        log = InstallationLog(
            session_id=session_id,
            component_id=component_id,
            status=status,
            error_message=message,
            sequence_order=seq_order,
            scan_time=scan_time or datetime.utcnow(),
        )
        db.session.add(log)
        db.session.flush()
        return log.id

    @_storage
    def update_log_status(self, log_id, status, install_time=None):
        log = db.session.get(InstallationLog, log_id)
        if not log:
            return False
        log.status = status
        if install_time is not None:
            log.install_time = install_time
        db.session.flush()
        return True

    @_storage
    def update_session_counters(self, session_id, total_delta, errors_delta):
        s = db.session.get(InstallationSession, session_id)
        s.total_components += total_delta
        s.errors_count += errors_delta
        db.session.flush()
        return True

    @_storage
    def complete_session(self, session_id, end_time=None):
        s = db.session.get(InstallationSession, session_id)
        if not s:
            return False
        s.status = SESSION_COMPLETED
        s.end_time = end_time or datetime.utcnow()
        db.session.flush()
        return True

    @_storage
    def commit(self):
        db.session.commit()

    def rollback(self):
        db.session.rollback()


class SessionLocks:
    # entries drop out once no caller holds the lock, so a lock in use is never replaced

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def get(self, session_id):
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.Lock()
            return lock

    def __len__(self):
        with self._guard:
            return len(self._locks)
