import os
from flask import Flask
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

def create_app(test_config=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY", "dev"),
        SQLALCHEMY_DATABASE_URI=os.environ.get("DATABASE_URL")
        or "sqlite:///" + os.path.join(app.instance_path, "install_tracker.sqlite3"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        MAX_WRONG_SCANS=int(os.environ.get("MAX_WRONG_SCANS", "3")),
        ALLOW_DB_RESET=bool(int(os.environ.get("ALLOW_DB_RESET", "1"))),
        RESET_DB=bool(int(os.environ.get("RESET_DB", "0"))),
    )
    if test_config:
        app.config.from_mapping(test_config)

    os.makedirs(app.instance_path, exist_ok=True)
    db.init_app(app)

    from .models import Component, Worker, InstallationSession, InstallationLog  # noqa

    # --- lightweight schema upgrade for SQLite: ensure 'install_time' on installation_log ---
    from sqlalchemy import inspect, text as sql_text
    with app.app_context():
        try:
            insp = inspect(db.engine)
            if insp.has_table('installation_log'):
                cols = [c['name'] for c in insp.get_columns('installation_log')]
                if 'install_time' not in cols:
                    with db.engine.begin() as conn:
                        conn.execute(sql_text('ALTER TABLE installation_log ADD COLUMN install_time DATETIME'))
                    app.logger.info('Added install_time column to installation_log')
        except Exception as e:
            app.logger.info(f'Schema check skipped/failed: {e}')

    from .validator import SequenceValidator
    app.extensions['sequence_validator'] = SequenceValidator(max_wrong_scans=app.config['MAX_WRONG_SCANS'])

    from .views import bp as main_bp
    app.register_blueprint(main_bp)

    @app.cli.command("db-init")
    def db_init():
        from .catalog import seed
        with app.app_context():
            db.create_all()
            added = seed(reset=app.config['RESET_DB'])
            if added:
                print("Initialized DB and seeded catalog:", ", ".join(c.part_number for c in added))
            else:
                print("Initialized DB; catalog already present")

    @app.cli.command("reset-db")
    def reset_db():
        from .catalog import seed
        with app.app_context():
            db.create_all()
            added = seed(reset=True)
            print(f"Database reset; {len(added)} components seeded")

    return app
