import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .models import (
    SESSION_COMPLETED, LOG_SCANNED, LOG_INSTALLED, LOG_SEQUENCE_ERROR, format_dt,
)
from .store import SessionStore, SessionLocks

logger = logging.getLogger(__name__)

DEFAULT_MAX_WRONG_SCANS = 3

STATE_ACTIVE = 'active'
STATE_BLOCKED = 'blocked'
STATE_COMPLETED = 'completed'


class Reason:
    NOT_FOUND = 'NotFound'
    ALREADY_INSTALLED = 'AlreadyInstalled'
    ALREADY_SCANNED = 'AlreadyScanned'
    PREVIOUSLY_FLAGGED = 'PreviouslyFlagged'
    SEQUENCE_ERROR = 'SequenceError'
    NOT_SCANNED = 'NotScanned'
    BLOCKED = 'Blocked'
    SESSION_COMPLETED = 'SessionCompleted'


def session_state(session, wrong_scans, max_wrong_scans=DEFAULT_MAX_WRONG_SCANS):
    if session.status == SESSION_COMPLETED:
        return STATE_COMPLETED
    if wrong_scans >= max_wrong_scans:
        return STATE_BLOCKED
    return STATE_ACTIVE


def check_sequence(scanned_order: int, last_installed_order: Optional[int]) -> Optional[str]:
    if last_installed_order is None:
        if scanned_order != 1:
            return f'Sequence error: installation must start with component order 1, got {scanned_order}'
        return None
    required = last_installed_order + 1
    if scanned_order != required:
        return (f'Sequence error: component order {required} must be installed '
                f'before scanning component order {scanned_order}')
    return None


@dataclass
class ScanOutcome:
    accepted: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    component: object = None
    log_id: Optional[int] = None
    scan_time: Optional[datetime] = None
    wrong_scans_count: int = 0
    is_blocked: bool = False
    can_scan: bool = False
    show_installation_guide: bool = False
    previous_error: Optional[str] = None

    def to_dict(self):
        return {
            'accepted': self.accepted,
            'reason': self.reason,
            'error_message': self.message,
            'component': self.component.to_dict() if self.component is not None else None,
            'log_id': self.log_id,
            'scan_time': format_dt(self.scan_time),
            'wrong_scans_count': self.wrong_scans_count,
            'is_blocked': self.is_blocked,
            'can_scan': self.can_scan,
            'show_installation_guide': self.show_installation_guide,
            'previous_error': self.previous_error,
        }


@dataclass
class ActionResult:
    ok: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self):
        data = {'ok': self.ok, 'reason': self.reason, 'message': self.message}
        data.update(self.extra)
        return data


class SequenceValidator:

    def __init__(self, store=None, locks=None, max_wrong_scans=DEFAULT_MAX_WRONG_SCANS):
        self.store = store or SessionStore()
        self.locks = locks or SessionLocks()
        self.max_wrong_scans = max_wrong_scans

    def _gate(self, session, wrong_scans):
        state = session_state(session, wrong_scans, self.max_wrong_scans)
        if state == STATE_COMPLETED:
            return Reason.SESSION_COMPLETED, 'Session is already completed'
        if state == STATE_BLOCKED:
            return Reason.BLOCKED, (f'Session blocked after {wrong_scans} wrong scans; '
                                    'contact your supervisor to continue')
        return None, None

    def evaluate_scan(self, session_id, part_number) -> ScanOutcome:
        component = self.store.find_component_by_part_number(part_number)
        if component is None:
            return ScanOutcome(False, Reason.NOT_FOUND, 'Component not found')
        with self.locks.get(session_id):
            session = self.store.find_session(session_id)
            if session is None:
                return ScanOutcome(False, Reason.NOT_FOUND, 'Session not found', component=component)
            return self._evaluate(session, component)

    def _evaluate(self, session, component) -> ScanOutcome:
        wrong_scans = self.store.count_sequence_errors(session.id)
        reason, message = self._gate(session, wrong_scans)
        if reason:
            logger.warning("session %s: scan of %s refused (%s)", session.id, component.part_number, reason)
            return ScanOutcome(False, reason, message, component=component,
                               wrong_scans_count=wrong_scans,
                               is_blocked=wrong_scans >= self.max_wrong_scans)

        existing = self.store.find_log(session.id, component.id)
        if existing is not None:
            outcome = ScanOutcome(False, component=component, wrong_scans_count=wrong_scans,
                                  is_blocked=wrong_scans >= self.max_wrong_scans)
            if existing.status == LOG_INSTALLED:
                outcome.reason, outcome.message = Reason.ALREADY_INSTALLED, 'Component already installed'
            elif existing.status == LOG_SEQUENCE_ERROR:
                outcome.reason = Reason.PREVIOUSLY_FLAGGED
                outcome.message = 'Component was previously scanned with sequence error'
                outcome.previous_error = existing.error_message
            else:
                outcome.reason, outcome.message = Reason.ALREADY_SCANNED, 'Component already scanned'
            # audit only, no log row
            logger.warning("session %s: duplicate scan of %s (%s)",
                           session.id, component.part_number, outcome.reason)
            return outcome

        last = self.store.find_last_installed(session.id)
        error = check_sequence(component.sequence_order, last.sequence_order if last else None)
        scan_time = datetime.utcnow()

        if error:
            try:
                log_id = self.store.append_log(session.id, component.id, LOG_SEQUENCE_ERROR,
                                               error, component.sequence_order, scan_time)
                self.store.update_session_counters(session.id, 1, 1)
                wrong_scans = self.store.count_sequence_errors(session.id)
                self.store.commit()
            except Exception:
                self.store.rollback()
                raise
            is_blocked = wrong_scans >= self.max_wrong_scans
            logger.warning("session %s: %s (wrong scans %d)", session.id, error, wrong_scans)
            return ScanOutcome(False, Reason.SEQUENCE_ERROR, error, component=component,
                               log_id=log_id, scan_time=scan_time,
                               wrong_scans_count=wrong_scans, is_blocked=is_blocked,
                               can_scan=False, show_installation_guide=False)

        try:
            log_id = self.store.append_log(session.id, component.id, LOG_SCANNED,
                                           None, component.sequence_order, scan_time)
            self.store.update_session_counters(session.id, 1, 0)
            self.store.commit()
        except Exception:
            self.store.rollback()
            raise
        is_blocked = wrong_scans >= self.max_wrong_scans
        logger.info("session %s: scanned %s (order %d)",
                    session.id, component.part_number, component.sequence_order)
        return ScanOutcome(True, component=component, log_id=log_id, scan_time=scan_time,
                           wrong_scans_count=wrong_scans, is_blocked=is_blocked,
                           can_scan=True, show_installation_guide=not is_blocked)

    def mark_installed(self, session_id, component_id) -> ActionResult:
        with self.locks.get(session_id):
            session = self.store.find_session(session_id)
            if session is None:
                return ActionResult(False, Reason.NOT_FOUND, 'Session not found')
            reason, message = self._gate(session, self.store.count_sequence_errors(session.id))
            if reason:
                return ActionResult(False, reason, message)

            log = self.store.find_log(session.id, component_id)
            if log is None or log.status != LOG_SCANNED:
                return ActionResult(False, Reason.NOT_SCANNED, 'Component not found or not scanned')

            install_time = datetime.utcnow()
            try:
                self.store.update_log_status(log.id, LOG_INSTALLED, install_time)
                self.store.commit()
            except Exception:
                self.store.rollback()
                raise
            logger.info("session %s: installed component %s", session.id, component_id)
            return ActionResult(True, message='Component marked as installed',
                                extra={'component_id': component_id,
                                       'install_time': format_dt(install_time)})

    def complete_session(self, session_id) -> ActionResult:
        with self.locks.get(session_id):
            session = self.store.find_session(session_id)
            if session is None:
                return ActionResult(False, Reason.NOT_FOUND, 'Session not found')
            reason, message = self._gate(session, self.store.count_sequence_errors(session.id))
            if reason:
                return ActionResult(False, reason, message)
            try:
                self.store.complete_session(session.id)
                self.store.commit()
            except Exception:
                self.store.rollback()
                raise
            logger.info("session %s: completed", session.id)
            return ActionResult(True, message='Session completed successfully')
