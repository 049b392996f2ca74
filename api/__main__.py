"""
Development server: python -m api
In production run create_app() behind a WSGI server (gunicorn/uwsgi).
"""
import logging
import os

from . import create_app
from .config import ConfigurationError

logger = logging.getLogger("api")


def main():
    try:
        # APP_ENV selects the configuration class (see get_config())
        app = create_app()
    except ConfigurationError as exc:
        raise SystemExit(f"Refusing to start: {exc}")

    host = os.getenv("FLASK_RUN_HOST", "0.0.0.0")
    port = int(os.getenv("FLASK_RUN_PORT", "8000"))
    debug = os.getenv("FLASK_DEBUG", str(app.config.get("DEBUG", False))).lower() in ("1", "true", "yes")
    logger.info("Starting ExpenseIt API (%s) on %s:%d", app.config.get("APP_ENV"), host, port)
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    main()
