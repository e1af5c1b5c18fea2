import logging
import os

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def create_app():
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "eventcert")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "eventcert")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 25 * 1024 * 1024

    site_root = os.getenv("SITE_ROOT", "/srv")
    app.config["SITE_ROOT"] = site_root
    app.config["CERT_LOCALE"] = os.getenv("CERT_LOCALE", "id")

    db.init_app(app)

    from . import models  # noqa: F401  registers tables on db.metadata

    @app.get("/healthz")
    def healthz():
        return jsonify({"ok": True})

    from .routes.certificates_multi import bp as certificates_multi_bp

    app.register_blueprint(certificates_multi_bp)

    logging.getLogger("eventcert.certificates").setLevel(
        os.getenv("CERT_LOG_LEVEL", "INFO").upper()
    )
    return app
