from __future__ import annotations

import logging.config
import mimetypes

import click
from flask import Flask, Response, abort, g, jsonify

from app.burial import admin_bp, burial_bp
from app.burial.bookings import booking_workflow
from app.core.auth import auth_bp
from app.core.config import Config
from app.core.errors import BurialError
from app.core.extensions import db, login_manager, migrate
from app.core.models import User, seed_demo_data
from app.core.principal import load_principal_context
from app.core.storage import default_storage


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.before_request(load_principal_context)

    app.register_blueprint(auth_bp)
    app.register_blueprint(burial_bp)
    app.register_blueprint(admin_bp)

    register_cli(app)
    register_routes(app)
    register_error_handlers(app)
    return app


def configure_logging(level: str) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
            },
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "default"},
            },
            "loggers": {
                "app": {"handlers": ["console"], "level": level.upper(), "propagate": True},
            },
        }
    )


def register_routes(app: Flask) -> None:
    @app.get("/")
    def home():
        return jsonify({"service": "kubur", "status": "ok"})

    @app.get("/storage/<path:object_path>")
    def stored_object(object_path: str):
        path = booking_workflow().readable_object(object_path, getattr(g, "principal", None))
        try:
            data = default_storage().read(path)
        except FileNotFoundError:
            abort(404)
        mimetype = mimetypes.guess_type(path)[0] or "application/octet-stream"
        return Response(data, mimetype=mimetype)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(BurialError)
    def burial_error(error: BurialError):
        return jsonify({"error": error.message, "kind": error.kind}), error.status_code

    @app.errorhandler(401)
    def unauthorized(_error):
        return jsonify({"error": "Sila log masuk", "kind": "AuthenticationError"}), 401

    @app.errorhandler(403)
    def forbidden(_error):
        return jsonify({"error": "Akses ditolak", "kind": "AuthorizationError"}), 403

    @app.errorhandler(404)
    def not_found(_error):
        return jsonify({"error": "Tidak ditemui", "kind": "NotFoundError"}), 404

    @app.errorhandler(413)
    def too_large(_error):
        return jsonify({"error": "Fail terlalu besar", "kind": "ValidationError"}), 413


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo users, plots, staff, kits and packages."""
        if reset:
            db.drop_all()
            db.create_all()
        if not User.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing users found.")


@login_manager.user_loader
def load_user(user_id: str) -> User | None:
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized_request():
    return jsonify({"error": "Sila log masuk", "kind": "AuthenticationError"}), 401
