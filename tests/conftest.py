import os
import sys
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker


# Ensure `import backend.app...` works regardless of where pytest is run from.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Must be set before anything imports backend.app.config.
os.environ["DISABLE_DOTENV"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["QUEUE_TX_RETRY_BACKOFF_S"] = "0.01"


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite3"


@pytest.fixture()
def session_factory(test_db_path: Path):
    """
    Fresh schema on a temporary SQLite file, wired into the shared database module.

    A file (not :memory:) so concurrent tests get real per-thread connections.
    """
    os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{test_db_path}"

    from backend.app import database as db

    engine = db.build_engine(os.environ["DATABASE_URL"])
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch the shared database module so router dependencies use the test DB.
    db.engine = engine
    db.SessionLocal = TestingSessionLocal

    # Import models so Base metadata is populated, then create tables.
    from backend.app import models  # noqa: F401

    db.Base.metadata.drop_all(bind=engine)
    db.Base.metadata.create_all(bind=engine)

    yield TestingSessionLocal

    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    """
    Direct SQLAlchemy session bound to the same temporary SQLite DB used by the test app.
    """
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def limiter():
    from backend.app.services.rate_limiter import RateLimiter

    return RateLimiter()


@pytest.fixture()
def app(session_factory, limiter) -> FastAPI:
    from backend.app.main import app as fastapi_app
    from backend.app.services.rate_limiter import get_rate_limiter

    fastapi_app.dependency_overrides[get_rate_limiter] = lambda: limiter
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


# -------------------- seed data --------------------


@pytest.fixture()
def make_user(db_session):
    from backend.app.models.user import User

    counter = {"n": 0}

    def _make(role: str = "student", **kwargs):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=kwargs.pop("email", f"{role}{n}@example.com"),
            name=kwargs.pop("name", f"{role.capitalize()}{n}"),
            first_name=kwargs.pop("first_name", "Test"),
            role=role,
            **kwargs,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def make_company(db_session):
    from backend.app.models.company import Company

    def _make(room: str, **kwargs):
        company = Company(
            name=kwargs.pop("name", f"Company {room}"),
            sector=kwargs.pop("sector", "Software"),
            website=kwargs.pop("website", "https://example.com"),
            room=room,
            estimated_interview_duration=kwargs.pop("estimated_interview_duration", 20),
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db_session.add(company)
        db_session.commit()
        db_session.refresh(company)
        return company

    return _make


@pytest.fixture()
def company(make_company):
    return make_company("R101", name="Acme")


@pytest.fixture()
def student(make_user):
    return make_user("student", student_status="ensa")


@pytest.fixture()
def committee(make_user, company):
    return make_user("committee", assigned_room=company.room)


@pytest.fixture()
def admin(make_user):
    return make_user("admin")


@pytest.fixture()
def token_for():
    from backend.app.utils.jwt import create_access_token

    def _headers(user) -> dict:
        token = create_access_token({"sub": user.id, "role": user.role})
        return {"Authorization": f"Bearer {token}"}

    return _headers
