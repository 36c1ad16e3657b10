import os

# до импорта workorders: модульный engine не должен лезть в Postgres
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import workorders.models  # noqa: E402,F401
from workorders.db import Base, get_db  # noqa: E402
from workorders.main import app  # noqa: E402
from workorders.services.users import UserService  # noqa: E402
from workorders.services.work_orders import WorkOrderService  # noqa: E402
from workorders.utils.enums import UserRole  # noqa: E402
from workorders.utils.tokens import make_access_token  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------- пользователи ----------

@pytest.fixture
def manager(db):
    return UserService(db).register("manager", "123456", UserRole.PRODUCTION_MANAGER)


@pytest.fixture
def operator(db):
    return UserService(db).register("operator1", "123456", UserRole.OPERATOR)


@pytest.fixture
def other_operator(db):
    return UserService(db).register("operator2", "123456", UserRole.OPERATOR)


@pytest.fixture
def service(db):
    return WorkOrderService(db)


@pytest.fixture
def deadline():
    return datetime(2030, 6, 15, 12, 0, 0)


@pytest.fixture
def make_work_order(service, manager, operator, deadline):
    def _make(product_name="Widget", quantity=10, operator_id=None, production_deadline=None):
        return service.create(
            product_name=product_name,
            quantity=quantity,
            production_deadline=production_deadline or deadline,
            operator_id=operator_id or operator.id,
            acting_manager_id=manager.id,
            acting_role=manager.role,
        )
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user) -> dict:
        token = make_access_token(user.id, user.username, user.role)
        return {"Authorization": f"Bearer {token}"}
    return _headers
