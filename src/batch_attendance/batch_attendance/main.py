from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, send_from_directory

from config import get_settings_module

from .database.bootstrap import apply_schema, apply_seed_sql, ensure_demo_users, list_tables

from .container import Container, build_container
from .attendance.controller import register as register_attendance
from .users.controller import register as register_users

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    db_config = getattr(settings, "DB_CONFIG")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    app.config["ATTENDANCE_TIMEZONE"] = getattr(settings, "ATTENDANCE_TIMEZONE", "UTC")
    app.config["UPLOAD_DIR"] = str(getattr(settings, "UPLOAD_DIR", "uploads"))
    app.config["UPLOAD_BASE_URL"] = getattr(settings, "UPLOAD_BASE_URL", "/uploads")

    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    logger.info(
        "settings=%s db=%s@%s:%s/%s tz=%s",
        settings_module,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
        app.config["ATTENDANCE_TIMEZONE"],
    )

    if container is None:
        root = Path(__file__).resolve().parents[3]
        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            apply_schema(db_config, schema_path=root / "database" / "schema.sql")
            logger.info("schema ready (tables=%s)", len(list_tables(db_config)))
        if bool(getattr(settings, "AUTO_SEED_DB", False)):
            apply_seed_sql(db_config, seed_path=root / "database" / "seed.sql")
            ensure_demo_users(db_config)
            logger.info("demo seed ready")

        container = build_container(
            db_config=db_config,
            upload_dir=app.config["UPLOAD_DIR"],
            upload_base_url=app.config["UPLOAD_BASE_URL"],
            timezone=app.config["ATTENDANCE_TIMEZONE"],
            face_match_enabled=bool(getattr(settings, "FACE_MATCH_ENABLED", False)),
        )

    upload_route = app.config["UPLOAD_BASE_URL"].rstrip("/") + "/<path:filename>"

    @app.route(upload_route, methods=["GET"], endpoint="uploaded_photo")
    def uploaded_photo(filename: str):
        return send_from_directory(Path(app.config["UPLOAD_DIR"]).resolve(), filename)

    register_users(app, container)
    register_attendance(app, container)

    return app
