from __future__ import annotations

from typing import Optional

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from config import Config, get_config
from db import init_engine
from app.middlewares.error_handler import init_error_handlers
from app.middlewares.request_id import init_request_id
from app.routes.core import core_bp
from app.routes.jobs import jobs_bp
from app.routes.learning import learning_bp
from app.utils.logging import setup_logging


def create_app(cfg: Optional[Config] = None) -> Flask:
    load_dotenv()

    cfg = cfg or get_config()
    setup_logging(cfg.LOG_LEVEL)

    app = Flask(__name__)
    app.config["CFG"] = cfg
    app.config["JSON_SORT_KEYS"] = False

    CORS(
        app,
        origins=cfg.CORS_ORIGINS,
        supports_credentials=cfg.CORS_ALLOW_CREDENTIALS,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Internal-Token"],
        expose_headers=["X-Request-ID"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        max_age=3600,
    )

    init_request_id(app)
    init_error_handlers(app)

    init_engine(cfg.DATABASE_URL)

    app.register_blueprint(core_bp)
    app.register_blueprint(learning_bp, url_prefix="/api/v1/learning")
    app.register_blueprint(jobs_bp, url_prefix="/api/v1/jobs")

    return app
