import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "false")

import uuid  # noqa: E402
from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.db import Base, SessionLocal, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.models.workflow import DocumentVariant  # noqa: E402
from app.schemas.workflow import DocumentCreate  # noqa: E402
from app.services.actor import Actor  # noqa: E402
from app.services.workflow import workflow  # noqa: E402

_CONTENT = {
    DocumentVariant.activity: {"description": "Orientation week for new members"},
    DocumentVariant.report: {"summary": "Spent 80% of the budget"},
    DocumentVariant.letter: {"body": "Requesting use of the main hall"},
}


@pytest.fixture()
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(schema):
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def session_factory(schema):
    sessions = []

    def _open():
        db = SessionLocal()
        sessions.append(db)
        return db

    yield _open
    for db in sessions:
        db.close()


@pytest.fixture(autouse=True)
def published():
    with patch("app.tasks.events.process_event.delay") as delay:
        yield delay


@pytest.fixture()
def client(schema):
    with TestClient(app) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture()
def org_x():
    return uuid.uuid4()


@pytest.fixture()
def org_y():
    return uuid.uuid4()


@pytest.fixture()
def author(org_x):
    return Actor.build(uuid.uuid4(), memberships=[(org_x, "MEMBER")])


@pytest.fixture()
def co_author(org_x):
    return Actor.build(uuid.uuid4(), memberships=[(org_x, "SECRETARY")])


@pytest.fixture()
def reviewer():
    return Actor.build(uuid.uuid4(), global_roles=["BEM_ADMIN"])


@pytest.fixture()
def second_reviewer():
    return Actor.build(uuid.uuid4(), global_roles=["BEM_ADMIN"])


@pytest.fixture()
def dema_reviewer():
    return Actor.build(uuid.uuid4(), global_roles=["DEMA_ADMIN"])


@pytest.fixture()
def org_reviewer(org_y):
    return Actor.build(uuid.uuid4(), memberships=[(org_y, "ORG_ADMIN")])


@pytest.fixture()
def admin():
    return Actor.build(uuid.uuid4(), global_roles=["ADMIN"])


@pytest.fixture()
def outsider():
    return Actor.build(uuid.uuid4(), memberships=[(uuid.uuid4(), "MEMBER")])


@pytest.fixture()
def actor_headers():
    def _headers(actor: Actor) -> dict:
        headers = {"X-Actor-Id": str(actor.id)}
        if actor.global_roles:
            headers["X-Actor-Roles"] = ",".join(sorted(actor.global_roles))
        if actor.memberships:
            headers["X-Actor-Orgs"] = ",".join(
                f"{m.org_id}:{m.role}" for m in actor.memberships
            )
        return headers

    return _headers


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_document(db_session):
    def _make(actor: Actor, variant=DocumentVariant.activity, submit=False, **fields):
        data = {
            "variant": variant,
            "origin_org_id": actor.memberships[0].org_id,
            "subject": f"{variant.value} {uuid.uuid4().hex[:6]}",
            "payload": dict(_CONTENT[variant]),
        }
        data.update(fields)
        document = workflow.create(db_session, actor, DocumentCreate(**data))
        if submit:
            document = workflow.submit(db_session, actor, document.id)
        return document

    return _make
