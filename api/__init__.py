import logging

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config, validate_config
from .errors import register_error_handlers
from models.db_storage import DBStorage
from services.auth_service import AuthService, AuthSettings
from services.notifier import Notifier, build_notifier
from utils.security import TokenCodec, make_password_hasher

API_PREFIX = "/api/v1"

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "ExpenseIt API",
        "version": "1.0.0",
        "description": "Personal finance tracking API: accounts, sessions, and expense/income transactions.",
    },
    "basePath": "/",
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(
    config_name: str | None = None,
    storage: DBStorage | None = None,
    notifier: Notifier | None = None,
    config_overrides: dict | None = None,
) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    Collaborators can be injected (tests pass an in-memory DBStorage and a
    RecordingNotifier); otherwise they are built from configuration.
    Raises ConfigurationError when token secrets are missing.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if config_overrides:
        app.config.update(config_overrides)
    app.config["API_PREFIX"] = API_PREFIX
    validate_config(app.config)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if storage is None:
        storage = DBStorage(
            app.config["DATABASE_URL"],
            echo=app.config.get("DB_ECHO", False),
            timeout=app.config.get("DB_TIMEOUT_SECONDS", 5),
        )
    storage.reload()

    access_codec = TokenCodec(app.config["JWT_ACCESS_SECRET"], app.config["JWT_ALGORITHM"])
    refresh_codec = TokenCodec(app.config["JWT_REFRESH_SECRET"], app.config["JWT_ALGORITHM"])
    auth_service = AuthService(
        storage=storage,
        password_hasher=make_password_hasher(app.config["PASSWORD_HASH_TIME_COST"]),
        access_codec=access_codec,
        refresh_codec=refresh_codec,
        settings=AuthSettings.from_config(app.config),
    )

    app.extensions["storage"] = storage
    app.extensions["access_codec"] = access_codec
    app.extensions["auth_service"] = auth_service
    app.extensions["notifier"] = notifier or build_notifier(app.config)

    # Cross-Origin Resource Sharing: credentials are needed for the refresh cookie
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        supports_credentials=app.config.get("CORS_ORIGINS", "*") != "*",
    )

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .transactions import bp as tx_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix=API_PREFIX)
    app.register_blueprint(auth_bp, url_prefix=f"{API_PREFIX}/auth")
    app.register_blueprint(tx_bp, url_prefix=API_PREFIX)
    app.register_blueprint(users_bp, url_prefix=API_PREFIX)

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # This calls scoped_session.remove(), preventing connection leaks
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to the ExpenseIt API",
            "docs": "/apidocs/",
            "health": f"{API_PREFIX}/health",
        }, 200

    return app
