"""Shared fixtures: in-memory app, logged-in client, seeded company."""

import pytest

from config import Config
from esghub import create_app, db
from esghub.models import Company, User


class ConfigForTests(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    ANTHROPIC_API_KEY = ""
    SMTP_USER = "sender@example.com"
    SMTP_PASSWORD = "app-password"
    PUBLIC_BASE_URL = "https://esg.example.com"


@pytest.fixture
def app():
    app = create_app(ConfigForTests)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Pushed app context for tests that talk to the models directly (no HTTP)."""
    with app.app_context():
        yield app


@pytest.fixture
def company_id(app):
    with app.app_context():
        return Company.query.filter_by(name="Empresa Demo").first().id


@pytest.fixture
def add(app):
    """Persist records in their own app context and return their ids."""
    def _add(*records):
        with app.app_context():
            db.session.add_all(records)
            db.session.commit()
            return [r.id for r in records]
    return _add


@pytest.fixture
def client(app):
    client = app.test_client()
    resp = client.post("/auth/login", json={"username": "admin", "password": "admin123"})
    assert resp.status_code == 200
    return client


@pytest.fixture
def anon_client(app):
    return app.test_client()


@pytest.fixture
def other_client(app):
    """Logged-in member of a second company."""
    with app.app_context():
        other = Company(name="Outra Empresa", sector="Serviços")
        db.session.add(other)
        db.session.flush()
        user = User(username="outro", email="outro@example.com", full_name="Outro Usuário",
                    company_id=other.id)
        user.set_password("senha1234")
        db.session.add(user)
        db.session.commit()

    client = app.test_client()
    resp = client.post("/auth/login", json={"username": "outro", "password": "senha1234"})
    assert resp.status_code == 200
    return client
