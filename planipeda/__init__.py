# planipeda/__init__.py
"""
Ce module est le cœur de l'application (paquet).
Il contient la factory de l'application `create_app`.
"""

import logging
import os
from typing import Any

from flask import Flask

from .extensions import db, migrate
from .progression import ORDRE_BASE


def get_database_uri() -> str:
    """
    Construit l'URI de la base de données pour SQLAlchemy.

    DATABASE_URL est utilisée telle quelle si elle est définie ; sinon l'URI
    PostgreSQL est construite à partir des variables préfixées selon FLASK_ENV.
    """
    url = os.environ.get("DATABASE_URL")
    if url:
        return url

    flask_env = os.environ.get("FLASK_ENV", "production")
    prefix = {"development": "DEV_", "test": "TEST_"}.get(flask_env, "PROD_")

    db_host = os.environ.get(f"{prefix}PGHOST")
    db_name = os.environ.get(f"{prefix}PGDATABASE")
    db_user = os.environ.get(f"{prefix}PGUSER")
    db_pass = os.environ.get(f"{prefix}PGPASSWORD")
    db_port = os.environ.get(f"{prefix}PGPORT", "5432")

    if not all([db_host, db_name, db_user, db_pass]):
        raise ValueError(f"Variables de BDD manquantes pour l'environnement '{flask_env}' (préfixe '{prefix}')")

    return f"postgresql+psycopg2://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}"


def create_app(test_config: dict[str, Any] | None = None) -> Flask:
    """Crée et configure une instance de l'application Flask (Application Factory)."""
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY", "dev"),
        ORDRE_BASE=int(os.environ.get("ORDRE_BASE", ORDRE_BASE)),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
    )

    if test_config:
        app.config.from_mapping(test_config)

    # L'URI n'est calculée que si la configuration de test ne la fournit pas.
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        app.config["SQLALCHEMY_DATABASE_URI"] = get_database_uri()

    if not app.debug and not app.testing:
        app.logger.setLevel(logging.INFO)

    try:
        os.makedirs(app.instance_path, exist_ok=True)
    except OSError as e:
        app.logger.error(f"Erreur lors de la création du dossier d'instance: {e}")

    db.init_app(app)
    migrate.init_app(app, db)

    from . import admin, api

    app.register_blueprint(api.bp)
    app.register_blueprint(admin.bp)

    from . import commands

    commands.init_app(app)

    return app
