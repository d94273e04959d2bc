from datetime import datetime
from flask import Blueprint, request, jsonify, current_app
from . import db
from .errors import StorageFailure
from .models import Component, Worker, InstallationSession, InstallationLog, LOG_SEQUENCE_ERROR, format_dt
from .validator import Reason, session_state

bp = Blueprint('main', __name__)


def _validator():
    return current_app.extensions['sequence_validator']


def _status_for(reason):
    if reason == Reason.NOT_FOUND:
        return 404
    # a sequence error is a recorded outcome, not a bad request
    if reason == Reason.SEQUENCE_ERROR:
        return 200
    return 400


@bp.app_errorhandler(StorageFailure)
def storage_failure(e):
    current_app.logger.error(f'Storage failure: {e}')
    return jsonify({'error': 'Storage failure', 'detail': str(e)}), 500


@bp.route('/health')
def health():
    return jsonify({'status': 'OK', 'timestamp': format_dt(datetime.utcnow())})


@bp.route('/api/components')
def components():
    rows = Component.query.order_by(Component.sequence_order).all()
    return jsonify([c.to_dict() for c in rows])


@bp.route('/api/components/<part_number>')
def component_detail(part_number):
    c = Component.query.filter_by(part_number=part_number).first()
    if not c:
        return jsonify({'error': 'Component not found'}), 404
    return jsonify(c.to_dict())


@bp.route('/api/workers')
def workers():
    return jsonify([w.to_dict() for w in Worker.query.order_by(Worker.employee_id).all()])


@bp.route('/api/sessions', methods=['POST'])
def start_session():
    data = request.get_json(silent=True) or {}
    worker = db.session.get(Worker, data.get('worker_id')) if data.get('worker_id') is not None else None
    if not worker:
        return jsonify({'error': 'Worker not found'}), 404
    s = InstallationSession(worker_id=worker.id)
    db.session.add(s)
    db.session.commit()
    current_app.logger.info(f'Session {s.id} started by {worker.employee_id}')
    return jsonify(s.to_dict()), 201


@bp.route('/api/sessions')
def sessions():
    rows = (db.session.query(InstallationSession, Worker)
            .join(Worker, InstallationSession.worker_id == Worker.id)
            .order_by(InstallationSession.start_time.desc(), InstallationSession.id.desc())
            .all())
    out = []
    for s, w in rows:
        d = s.to_dict()
        d['worker_name'] = w.name
        d['employee_id'] = w.employee_id
        d['components_logged'] = len(s.logs)
        out.append(d)
    return jsonify(out)


@bp.route('/api/sessions/<int:session_id>/scan', methods=['POST'])
def scan(session_id):
    data = request.get_json(silent=True) or {}
    code = data.get('part_number')
    if code is not None and not isinstance(code, str):
        return jsonify({'error': 'part_number must be a string'}), 400
    code = (code or '').strip()
    if not code:
        return jsonify({'error': 'No code scanned'}), 400
    outcome = _validator().evaluate_scan(session_id, code)
    body = outcome.to_dict()
    if not outcome.accepted:
        body['error'] = outcome.message
    return jsonify(body), 200 if outcome.accepted else _status_for(outcome.reason)


@bp.route('/api/sessions/<int:session_id>/install', methods=['POST'])
def install(session_id):
    data = request.get_json(silent=True) or {}
    component_id = data.get('component_id')
    if component_id is None:
        return jsonify({'error': 'component_id required'}), 400
    try:
        component_id = int(component_id)
    except (TypeError, ValueError):
        return jsonify({'error': 'component_id must be an integer'}), 400
    result = _validator().mark_installed(session_id, component_id)
    body = result.to_dict()
    if not result.ok:
        body['error'] = result.message
        return jsonify(body), _status_for(result.reason)
    return jsonify(body)


@bp.route('/api/sessions/<int:session_id>/logs')
def session_logs(session_id):
    logs = (InstallationLog.query.filter_by(session_id=session_id)
            .order_by(InstallationLog.scan_time, InstallationLog.id).all())
    return jsonify([log.to_dict() for log in logs])


@bp.route('/api/sessions/<int:session_id>/complete', methods=['PUT'])
def complete(session_id):
    result = _validator().complete_session(session_id)
    body = result.to_dict()
    if not result.ok:
        body['error'] = result.message
        return jsonify(body), _status_for(result.reason)
    return jsonify(body)


@bp.route('/api/sessions/<int:session_id>/stats')
def session_stats(session_id):
    s = db.session.get(InstallationSession, session_id)
    if not s:
        return jsonify({'error': 'Session not found'}), 404
    logs = (InstallationLog.query.filter_by(session_id=session_id)
            .order_by(InstallationLog.scan_time, InstallationLog.id).all())
    wrong_scans = sum(1 for log in logs if log.status == LOG_SEQUENCE_ERROR)
    stats = s.to_dict()
    stats.update({
        'state': session_state(s, wrong_scans, current_app.config['MAX_WRONG_SCANS']),
        'wrong_scans_count': wrong_scans,
        'success_rate': round((s.total_components - s.errors_count) / s.total_components * 100, 2)
        if s.total_components > 0 else 0,
        'duration_minutes': round((s.end_time - s.start_time).total_seconds() / 60, 2)
        if s.end_time else None,
        'components': [log.to_dict() for log in logs],
    })
    return jsonify(stats)


@bp.route('/api/reset-db', methods=['POST'])
def reset_db():
    if not current_app.config.get('ALLOW_DB_RESET'):
        return jsonify({'error': 'Database reset not allowed'}), 403
    from .catalog import seed
    # development only; in-flight requests keep their session locks
    seed(reset=True)
    return jsonify({'message': 'Database reset completed successfully'})
