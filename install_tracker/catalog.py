from flask import current_app
from . import db
from .errors import CatalogError
from .models import Component, Worker, InstallationSession, InstallationLog

# (name, part_number, description, installation_guide, sequence_order)
DEFAULT_COMPONENTS = [
    ('Base Plate', 'PA-001', 'Main base plate for mounting',
     '1. Clean the surface\n2. Align with mounting holes\n3. Fasten with 4 M8 bolts\n4. Torque to 45 Nm', 1),
    ('Motor Bracket', 'PM-002', 'Motor mounting bracket',
     '1. Place on base plate\n2. Align with motor shaft\n3. Fasten with 2 M6 bolts\n4. Check alignment', 2),
    ('Drive Belt', 'TP-003', 'Power transmission belt',
     '1. Route belt around pulleys\n2. Adjust tension\n3. Verify alignment\n4. Inspect belt condition', 3),
    ('Control Panel', 'PK-004', 'Main control interface',
     '1. Mount in designated area\n2. Connect power cable\n3. Connect signal cable\n4. Test function', 4),
    ('Safety Guard', 'PK-005', 'Protective safety cover',
     '1. Position over moving parts\n2. Secure with latches\n3. Verify clearance\n4. Test safety switch', 5),
]

# (name, employee_id, department)
DEFAULT_WORKERS = [
    ('Ahmad bin Ismail', 'EMP001', 'Assembly'),
    ('Siti binti Rahman', 'EMP002', 'Quality Control'),
    ('Raj Kumar a/l Muthu', 'EMP003', 'Assembly'),
    ('Lim Wei Chen', 'EMP004', 'Maintenance'),
    ('Fatimah binti Omar', 'EMP005', 'Quality Control'),
]


def validate_catalog(rows):
    """Check part numbers are unique and sequence orders are exactly 1..N."""
    parts = [r[1] for r in rows]
    dupes = sorted({p for p in parts if parts.count(p) > 1})
    if dupes:
        raise CatalogError(f'Duplicate part numbers: {", ".join(dupes)}')
    orders = sorted(r[4] for r in rows)
    if orders != list(range(1, len(rows) + 1)):
        raise CatalogError(f'Sequence orders must be 1..{len(rows)} with no gaps or repeats, got {orders}')


def seed(components=None, workers=None, reset=False):
    """Seed catalog and workers when empty (or always when ``reset``).

    Returns the components added.
    """
    components = DEFAULT_COMPONENTS if components is None else components
    workers = DEFAULT_WORKERS if workers is None else workers
    validate_catalog(components)

    if reset:
        InstallationLog.query.delete()
        InstallationSession.query.delete()
        Component.query.delete()
        Worker.query.delete()
        db.session.commit()
        current_app.logger.info('Database reset requested - cleared existing data')

    added = []
    if Component.query.count() == 0:
        for name, part, desc, guide, order in components:
            c = Component(name=name, part_number=part, description=desc,
                          installation_guide=guide, sequence_order=order)
            db.session.add(c)
            added.append(c)
    if Worker.query.count() == 0:
        for name, emp, dept in workers:
            db.session.add(Worker(name=name, employee_id=emp, department=dept))
    db.session.commit()
    if added:
        current_app.logger.info('Seeded %d components', len(added))
    return added
