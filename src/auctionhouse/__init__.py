# auctionhouse/__init__.py
from flask import Flask
from sqlalchemy import text
from .config import Config
from .extensions import db, migrate, bcrypt, jwt, cors, scheduler
from .routes import register_blueprints
from .tasks import schedule_jobs
from .cli import register_cli
from .live import init_publisher
from .logging_setup import configure_logging
from .utils import api_error, api_ok, register_error_handlers


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config())
    if overrides:
        app.config.update(overrides)
    configure_logging(app)

    # Extensiones base
    db.init_app(app)
    migrate.init_app(app, db)
    bcrypt.init_app(app)
    jwt.init_app(app)

    cors.init_app(
        app,
        resources={
            r"/api/*": {
                "origins": app.config["CORS_ORIGINS"],
                "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
                "allow_headers": ["Content-Type", "Authorization"],
                "supports_credentials": True,
            },
        },
    )

    # Publicador hacia el broadcaster (proceso aparte)
    init_publisher(app)

    register_blueprints(app)
    register_error_handlers(app)

    @app.get("/api/health")
    def health():
        db.session.execute(text("SELECT 1"))
        return api_ok({"status": "ok", "live": app.extensions["live_publisher"].connected})

    # Mensajes JWT claros (evita 500 opacos)
    @jwt.unauthorized_loader
    def jwt_missing(reason):
        return api_error(f"Autenticación requerida: {reason}", 401, code="Unauthorized")

    @jwt.invalid_token_loader
    def jwt_invalid(reason):
        return api_error(f"Token inválido: {reason}", 401, code="Unauthorized")

    @jwt.expired_token_loader
    def jwt_expired(h, d):
        return api_error("Token expirado.", 401, code="Unauthorized")

    # Jobs
    if app.config["RUN_SCHEDULER"]:
        scheduler.init_app(app)
        schedule_jobs(scheduler, app)
        scheduler.start()

    register_cli(app)
    return app
