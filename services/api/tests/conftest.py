from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import pac_api.models  # noqa: F401
from pac_api.core.config import get_settings
from pac_api.models.base import Base

from factories import World, build_world


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch) -> Generator[None, None, None]:
    """测试环境降低哈希迭代次数，避免用例耗时过长。"""
    monkeypatch.setenv("PAC_PIN_HASH_ITERATIONS", "1000")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    local_session = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)
    db = local_session()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def world(db_session: Session) -> World:
    return build_world(db_session)
