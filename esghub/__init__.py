import os
import logging

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS

from config import Config

db = SQLAlchemy()
login_manager = LoginManager()

_startup_errors = []


@login_manager.unauthorized_handler
def _unauthorized():
    return jsonify({
        "error": "Não autorizado",
        "response": "Faça login para continuar.",
    }), 401


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger(__name__)

    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    login_manager.init_app(app)

    # Front-end is served from a different origin
    CORS(app, resources={r"/*": {"origins": "*"}}, supports_credentials=True)

    from flask_compress import Compress
    Compress(app)

    from esghub.auth.routes import auth_bp
    from esghub.chat.routes import chat_bp
    from esghub.dashboard.routes import dashboard_bp
    from esghub.mailing.routes import mailing_bp
    from esghub.registers.routes import registers_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(chat_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(mailing_bp)
    app.register_blueprint(registers_bp)

    @app.route("/health")
    def health():
        """Health check: app status and config for debugging."""
        db_url = app.config["SQLALCHEMY_DATABASE_URI"]
        db_type = db_url.split("://")[0] if "://" in db_url else "sqlite"

        db_ok = False
        db_error = None
        tables = []
        try:
            from sqlalchemy import inspect, text
            db.session.execute(text("SELECT 1"))
            db_ok = True
            tables = inspect(db.engine).get_table_names()
        except Exception as e:
            db_error = str(e)

        return jsonify({
            "status": "ok" if db_ok else "db_error",
            "ai_key_set": bool(app.config.get("ANTHROPIC_API_KEY")),
            "smtp_configured": bool(app.config.get("SMTP_USER") and app.config.get("SMTP_PASSWORD")),
            "database_type": db_type,
            "database_connected": db_ok,
            "database_error": db_error,
            "tables": tables,
            "startup_errors": _startup_errors,
        })

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Recurso não encontrado."}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Método não permitido."}), 405

    @app.errorhandler(500)
    def internal_error(error):
        try:
            db.session.rollback()
        except Exception as e:
            logger.warning(f"Rollback after 500 failed: {e}")
        original = getattr(error, "original_exception", None) or error
        logger.error(f"500 error: {type(original).__name__}: {original}")
        return jsonify({
            "error": "Erro interno do servidor.",
            "response": "Desculpe, ocorreu um erro inesperado. Tente novamente.",
        }), 500

    with app.app_context():
        try:
            db.create_all()
            logger.info("Database tables created/verified.")
        except Exception as e:
            msg = f"db.create_all() failed: {e}"
            logger.error(msg)
            _startup_errors.append(msg)

        try:
            _seed_admin()
        except Exception as e:
            msg = f"_seed_admin() failed: {e}"
            logger.error(msg)
            _startup_errors.append(msg)

    return app


def _seed_admin():
    """Create the demo company and default admin user if none exists."""
    from esghub.models import Company, User

    if User.query.filter_by(username="admin").first():
        return

    company = Company.query.order_by(Company.id).first()
    if not company:
        company = Company(name="Empresa Demo", sector="Indústria")
        db.session.add(company)
        db.session.flush()

    admin = User(
        username="admin",
        email="admin@example.com",
        role="admin",
        full_name="Administrator",
        company_id=company.id,
    )
    admin.set_password("admin123")
    db.session.add(admin)
    db.session.commit()
