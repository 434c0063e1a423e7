"""Flask web app exposing the configurator engine over JSON.

Run locally with ``python -m configurator_web.app``.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from flask import Flask

# Load environment variables before config modules read them
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

from configurator.db import init_db  # noqa: E402
from configurator.logging_config import setup_logging  # noqa: E402

from .api import api  # noqa: E402
from .config import (  # noqa: E402
    DB_PATH,
    ERROR_LOG_DB_PATH,
    FLASK_DEBUG,
    FLASK_HOST,
    FLASK_PORT,
    MAX_CONTENT_LENGTH,
)
from .error_logging import init_error_logging_db  # noqa: E402

__all__ = ["create_app"]

logger = logging.getLogger(__name__)


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    """Create the Flask app.

    Args:
        config: Overrides for app.config (e.g. ``DB_PATH`` in tests).
    """
    app = Flask(__name__)
    app.config.update(
        DB_PATH=DB_PATH,
        ERROR_LOG_DB_PATH=ERROR_LOG_DB_PATH,
        MAX_CONTENT_LENGTH=MAX_CONTENT_LENGTH,
    )
    if config:
        app.config.update(config)

    init_db(app.config["DB_PATH"])
    init_error_logging_db(app.config["ERROR_LOG_DB_PATH"])

    app.register_blueprint(api)
    logger.info(f"Configurator API ready (db: {app.config['DB_PATH']})")
    return app


if __name__ == "__main__":
    setup_logging(level=logging.DEBUG if FLASK_DEBUG else logging.INFO)
    create_app().run(host=FLASK_HOST, port=FLASK_PORT, debug=FLASK_DEBUG)
