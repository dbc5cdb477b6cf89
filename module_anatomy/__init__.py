import logging
import os
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_compress import Compress
from flask_cors import CORS

from module_anatomy.utils.logging_utils import get_logger, init_logger

# Load environment variables from .env file
load_dotenv()

from .config import config, Config
from .extensions import cache, db, ma, migrate
from .models import *  # noqa: F401,F403  (register mappers before create_all/migrate)
from .commands.seed_commands import seed_command
from .commands.setup_commands import install_command
from .routes import register_blueprints
from .services import init_registry


def configure_logging(app):
    log_file = app.config.get('LOG_FILE', '/tmp/module_anatomy.log')
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    if not any(isinstance(h, RotatingFileHandler) for h in app.logger.handlers):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=app.config.get('LOG_MAX_BYTES', 10485760),  # 10MB default
            backupCount=app.config.get('LOG_BACKUP_COUNT', 5)
        )
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(getattr(logging, app.config.get('LOG_LEVEL', 'INFO')))
        app.logger.addHandler(file_handler)

    app.logger.setLevel(getattr(logging, app.config.get('LOG_LEVEL', 'INFO')))
    app.logger.info("Logging configured with level: %s", app.config.get('LOG_LEVEL', 'INFO'))

    # Configure categorized loggers using the same application config.
    init_logger(app)


def create_app(config_name=None):
    # Determine configuration based on environment variable or parameter
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'default')

    config_class = config.get(config_name, Config)

    app = Flask(__name__)
    app.config.from_object(config_class)
    config_class.init_app(app)

    configure_logging(app)
    app.logger.info("Using config: %s", config_class.__name__)
    get_logger("app").info(
        "%s %s starting (environment=%s, config=%s)",
        app.config.get("APP_NAME"),
        app.config.get("APP_VERSION"),
        app.config.get("MY_ENVIRONMENT"),
        config_class.__name__,
    )

    db.init_app(app)
    migrate.init_app(app, db)
    ma.init_app(app)
    cache.init_app(app)
    init_registry(app)

    app.cli.add_command(install_command)
    app.cli.add_command(seed_command)

    register_blueprints(app)

    @app.errorhandler(404)
    def _not_found(e):
        return jsonify({"error": "not_found"}), 404

    @app.errorhandler(500)
    def _server_error(e):
        app.logger.exception("Unhandled server error")
        get_logger("error").error("Unhandled server error: %s", e)
        return jsonify({"error": "internal_server_error"}), 500

    Compress(app)
    CORS(app, supports_credentials=True, origins=app.config.get('CORS_ORIGINS', '*'))
    app.logger.info("Middleware loaded: Compress, CORS")

    return app
