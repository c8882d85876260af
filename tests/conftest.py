import os
import time
import uuid

# Settings are read at import time; point the app at SQLite before importing it
os.environ["SQLALCHEMY_DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-with-enough-length-for-hs256"
os.environ["SUPABASE_URL"] = "http://supabase.test"
os.environ["NOTEBOOK_GENERATION_AUTH"] = "test-webhook-auth"
os.environ["NOTEBOOK_CHAT_URL"] = "http://hooks.test/notebook"
os.environ["EXECUTIVE_CHAT_URL"] = "http://hooks.test/executive"
os.environ["BOARD_CHAT_URL"] = "http://hooks.test/board"

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.api import deps
from app.core.config import settings
from app.core.database import Base, get_db
from app.models.policy_document import PolicyDocument
from app.models.profile import Profile
from app.models.user_role import UserRole
from app.services.chat_relay import ChatWebhookRelay
from app.services.edge_functions import EdgeFunctionClient
from app.services.storage import StorageService

# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingTransport:
    """Collects outbound requests and answers them through an httpx.MockTransport."""

    def __init__(self, handler=None):
        self.requests = []
        self._handler = handler or (lambda request: httpx.Response(200, json={"success": True}))
        self.transport = httpx.MockTransport(self._record)

    def _record(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def paths(self):
        return [r.url.path for r in self.requests]


def make_token(user_id: str, email: str = None, expires_in: int = 3600) -> str:
    payload = {
        "sub": user_id,
        "email": email or f"{user_id[:8]}@example.com",
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm="HS256")


@pytest.fixture(scope="session")
def db_engine():
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def connection(db_engine):
    connection = db_engine.connect()
    transaction = connection.begin()

    yield connection

    transaction.rollback()
    connection.close()


@pytest.fixture(scope="function")
def db(connection):
    session = TestingSessionLocal(bind=connection)
    yield session
    session.close()


@pytest.fixture(scope="function")
def session_factory(connection):
    """Fresh sessions on the test connection, for background work and feeds."""
    return lambda: TestingSessionLocal(bind=connection)


@pytest.fixture(scope="function")
def outbound():
    return RecordingTransport()


@pytest.fixture(scope="function")
def storage(outbound):
    return StorageService(transport=outbound.transport)


@pytest.fixture(scope="function")
def functions(outbound):
    return EdgeFunctionClient(transport=outbound.transport)


@pytest.fixture(scope="function")
def relay(outbound):
    return ChatWebhookRelay(transport=outbound.transport)


@pytest.fixture(scope="function")
def client(db, session_factory, storage, functions, relay):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_edge_functions] = lambda: functions
    app.dependency_overrides[deps.get_chat_relay] = lambda: relay
    app.state.role_cache.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _create_user(db, *roles):
    user_id = str(uuid.uuid4())
    db.add(Profile(id=user_id, email=f"{user_id[:8]}@example.com"))
    for role in roles:
        db.add(UserRole(user_id=user_id, role=role))
    db.commit()
    return user_id


@pytest.fixture(scope="function")
def make_user(db):
    """Factory: make_user("executive", "board") -> user id holding those roles."""
    return lambda *roles: _create_user(db, *roles)


@pytest.fixture(scope="function")
def auth_headers():
    return lambda user_id: {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture(scope="function")
def board_user(make_user):
    return make_user("board")


@pytest.fixture(scope="function")
def admin_user(make_user):
    return make_user("administrator")


@pytest.fixture(scope="function")
def executive_user(make_user):
    return make_user("executive")


@pytest.fixture(scope="function")
def make_document(db):
    def _make(role_assignment="administrator", title="Leave Policy", owner_id="owner"):
        document = PolicyDocument(
            title=title,
            user_id=owner_id,
            role_assignment=role_assignment,
            generation_status="pending",
            example_questions=[],
        )
        db.add(document)
        db.commit()
        db.refresh(document)
        return document
    return _make


@pytest.fixture(scope="function")
def make_recorder():
    """Factory for a RecordingTransport with a custom response handler."""
    return RecordingTransport
