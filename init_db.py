"""
Create the ALIA tables on a fresh database.

    RESET_DB=1 python init_db.py    drop users/profiles/analyses first

Schema changes after the first deploy go through Flask-Migrate
(`flask db migrate` / `flask db upgrade`).
"""
import os
import sys

# Add app to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy import inspect

from alia import create_app, db


def reset_requested():
    return os.getenv('RESET_DB', '').strip().lower() in ('1', 'true', 'yes')


def init_db(config_name=None):
    """Create missing tables and return the app they were created for."""
    app = create_app(config_name or os.getenv('FLASK_ENV', 'production'))

    with app.app_context():
        if reset_requested():
            app.logger.warning('RESET_DB is set - dropping %s', ', '.join(sorted(db.metadata.tables)))
            db.drop_all()

        existing = set(inspect(db.engine).get_table_names())
        db.create_all()
        created = sorted(set(db.metadata.tables) - existing)
        if created:
            app.logger.info('Created tables: %s', ', '.join(created))
        else:
            app.logger.info('All tables already exist')
    return app


if __name__ == '__main__':
    init_db()
