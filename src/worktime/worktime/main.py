from __future__ import annotations

import importlib
import logging
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .database.bootstrap import apply_schema, apply_seed_sql, list_tables, migrate_legacy_statuses

from .container import Container, build_container
from .attendance.controller import register as register_attendance
from .corrections.controller import register as register_corrections
from .finalization.controller import register as register_finalization
from .finalization.scheduler import start_finalization_scheduler

logger = logging.getLogger(__name__)

DATABASE_DIR = Path(__file__).resolve().parents[3] / "database"


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(container: Container | None = None, *, start_scheduler: bool | None = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        logger.info(
            "settings=%s db=%s@%s:%s/%s",
            settings_module,
            db_config.get("user"),
            db_config.get("host"),
            db_config.get("port", 3306),
            db_config.get("database"),
        )

        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            apply_schema(db_config, schema_path=DATABASE_DIR / "schema.sql")
            migrate_legacy_statuses(db_config)
            logger.info("Schema ready (tables=%s)", len(list_tables(db_config)))
        if bool(getattr(settings, "AUTO_SEED_DB", False)):
            apply_seed_sql(db_config, seed_path=DATABASE_DIR / "seed.sql")

        container = build_container(db_config=db_config, settings=settings)

    app.extensions["worktime"] = container

    register_attendance(app, container)
    register_corrections(app, container)
    register_finalization(app, container)

    if start_scheduler is None:
        start_scheduler = bool(getattr(settings, "FINALIZATION_SCHEDULER_ENABLED", False))
    if start_scheduler:
        app.extensions["worktime_scheduler"] = start_finalization_scheduler(
            container.finalization_service,
            interval_minutes=int(getattr(settings, "FINALIZATION_INTERVAL_MINUTES", 15)),
        )

    return app
