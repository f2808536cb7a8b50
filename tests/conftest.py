from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from dynaquery.core.config import Settings
from dynaquery.core.template_store import TemplateStore
from tests.utils.models import create_users

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, resource_root=FIXTURES)


@pytest.fixture
def store(settings: Settings) -> TemplateStore:
    s = TemplateStore(settings)
    s.load()
    return s


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        for user in create_users():
            session.add(user)
        session.commit()
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
