"""
ALIA Application Factory
"""
from datetime import datetime, timezone
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from config import get_config

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()


def create_app(config_name=None):
    """Application factory; config_name defaults to FLASK_ENV"""
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)

    login_manager.login_view = 'auth.login'
    login_manager.login_message = 'Faça login para acessar esta página.'

    # Register blueprints
    from alia.auth import auth_bp
    from alia.views import main_bp, default_flow
    from alia.stripe_webhook import webhook_bp
    from alia.session import SessionRegistry

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(webhook_bp)

    # Stripe signs webhooks; CSRF tokens don't apply
    csrf.exempt(webhook_bp)

    app.extensions['alia_sessions'] = SessionRegistry(lambda: default_flow(app))

    @app.route('/healthz')
    def healthz():
        """Database round-trip plus configuration of the external collaborators"""
        from sqlalchemy import text
        from sqlalchemy.exc import SQLAlchemyError
        from alia.services.aws_service import storage_ready
        from alia.services.openai_service import client_ready

        try:
            db.session.execute(text('SELECT 1'))
            db_status = "ok"
        except SQLAlchemyError as e:
            db.session.rollback()
            db_status = f"error: {type(e).__name__}"

        services = {}
        for name, (ok, msg) in (('openai', client_ready()), ('storage', storage_ready())):
            services[name] = "ok" if ok else msg
        services['stripe'] = "ok" if app.config.get('STRIPE_WEBHOOK_SECRET') else "STRIPE_WEBHOOK_SECRET not set"

        return jsonify({
            "status": "ok" if db_status == "ok" else "degraded",
            "version": app.config['APP_VERSION'],
            "database": db_status,
            "services": services,
            "timestamp": datetime.now(timezone.utc).isoformat()
        })

    # Version endpoint
    @app.route('/version')
    def version():
        """Version and build info"""
        return jsonify({
            "version": app.config['APP_VERSION'],
            "build_time": app.config['BUILD_TIME'],
            "git_commit": app.config['GIT_COMMIT'],
            "features": {
                "pdf_export": True,
                "text_export": True,
                "stripe_checkout": bool(app.config.get('STRIPE_PRICE_ID')),
            }
        })

    with app.app_context():
        from sqlalchemy import inspect
        from alia import models  # noqa: F401  register tables

        # Only create tables if they don't exist (safe for existing DB)
        inspector = inspect(db.engine)
        if not inspector.get_table_names():
            app.logger.info('No tables found, creating...')
            db.create_all()

    return app

