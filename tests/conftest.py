import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from velo.db import get_session, init_db, make_engine
from velo.main import app
from velo.storage import Storage


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(session):
    return Storage(session)


@pytest.fixture
def client(session_factory):
    def override_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def board(storage):
    project = storage.create_project("Sprint Q1")
    return storage.create_board(project.id, "Sprint 1")


@pytest.fixture
def make_column(storage, board):
    def factory(name="Column", task_limit=None):
        return storage.create_column(board.id, name, task_limit=task_limit)

    return factory


@pytest.fixture
def make_tasks(storage):
    def factory(column, *titles):
        return [storage.create_task(column.id, title) for title in titles]

    return factory

