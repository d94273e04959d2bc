from datetime import datetime
from . import db
from sqlalchemy import UniqueConstraint

SESSION_IN_PROGRESS = 'in_progress'
SESSION_COMPLETED = 'completed'

LOG_SCANNED = 'scanned'
LOG_INSTALLED = 'installed'
LOG_SEQUENCE_ERROR = 'sequence_error'


def format_dt(value):
    if not value:
        return None
    return value.strftime('%Y-%m-%dT%H:%M:%S')


class Component(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    part_number = db.Column(db.String(64), unique=True, nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    installation_guide = db.Column(db.Text, nullable=True)
    sequence_order = db.Column(db.Integer, unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    logs = db.relationship('InstallationLog', back_populates='component')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'part_number': self.part_number,
            'description': self.description,
            'installation_guide': self.installation_guide,
            'sequence_order': self.sequence_order,
        }


class Worker(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    employee_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    department = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    sessions = db.relationship('InstallationSession', back_populates='worker')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'employee_id': self.employee_id,
            'department': self.department,
        }


class InstallationSession(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    worker_id = db.Column(db.Integer, db.ForeignKey('worker.id'), nullable=False, index=True)
    start_time = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    end_time = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(16), default=SESSION_IN_PROGRESS, nullable=False)  # in_progress, completed
    total_components = db.Column(db.Integer, default=0, nullable=False)
    errors_count = db.Column(db.Integer, default=0, nullable=False)

    worker = db.relationship('Worker', back_populates='sessions')
    logs = db.relationship('InstallationLog', back_populates='session', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'session_id': self.id,
            'worker_id': self.worker_id,
            'start_time': format_dt(self.start_time),
            'end_time': format_dt(self.end_time),
            'status': self.status,
            'total_components': self.total_components,
            'errors_count': self.errors_count,
        }


class InstallationLog(db.Model):
    __table_args__ = (UniqueConstraint('session_id', 'component_id', name='uix_session_component'),)
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('installation_session.id'), nullable=False, index=True)
    component_id = db.Column(db.Integer, db.ForeignKey('component.id'), nullable=False)
    scan_time = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    install_time = db.Column(db.DateTime, nullable=True)
    sequence_order = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), default=LOG_SCANNED, nullable=False)  # scanned, installed, sequence_error
    error_message = db.Column(db.Text, nullable=True)

    session = db.relationship('InstallationSession', back_populates='logs')
    component = db.relationship('Component', back_populates='logs')

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'component_id': self.component_id,
            'name': self.component.name,
            'part_number': self.component.part_number,
            'sequence_order': self.sequence_order,
            'scan_time': format_dt(self.scan_time),
            'install_time': format_dt(self.install_time),
            'status': self.status,
            'error_message': self.error_message,
        }
