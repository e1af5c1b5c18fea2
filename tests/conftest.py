import os
import pathlib
import sys
from datetime import datetime

import pytest
from PIL import Image

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from eventcert.app import create_app, db
from eventcert.shared.certificate_values import ParticipantContext


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def app(tmp_path):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    os.environ["SITE_ROOT"] = str(tmp_path)
    os.environ["CERT_LOCALE"] = "id"
    application = create_app()
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_image(tmp_path):
    def _make(name="template.png", size=(1684, 1190), fmt=None, color="white"):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", size, color).save(path, format=fmt)
        return str(path)

    return _make


@pytest.fixture
def participant():
    return ParticipantContext(
        id=7,
        name="Jane Doe",
        email="jane@example.com",
        token="TKT-123",
        event_id=3,
        event_name="Tech Summit",
        event_slug="summit",
        event_start_time=datetime(2024, 3, 15, 9, 0),
    )
