import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from classbook.db.session import Base
from factories import (
    create_class,
    create_class_type,
    create_student,
    create_teacher_context,
    create_tenant,
)


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    TestingSessionLocal = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def tenant(db_session):
    return create_tenant(db_session)


@pytest.fixture()
def teacher_ctx(db_session, tenant):
    return create_teacher_context(db_session, tenant)


@pytest.fixture()
def class_type(db_session, tenant):
    return create_class_type(db_session, tenant)


@pytest.fixture()
def make_student(db_session, tenant):
    def factory(name="Student", owner=None):
        return create_student(db_session, owner or tenant, name=name)

    return factory


@pytest.fixture()
def make_class(db_session, tenant, class_type):
    def factory(**kwargs):
        owner = kwargs.pop("owner", tenant)
        kind = kwargs.pop("class_type", class_type)
        return create_class(db_session, owner, kind, **kwargs)

    return factory
