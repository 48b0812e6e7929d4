import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from georeport import config
from georeport.db.db import get_session, init_db
from georeport.main import app
from georeport.models.category import Category
from georeport.models.enums import Permission
from georeport.models.estado import Estado
from georeport.models.profile import Profile
from georeport.models.reporte import Reporte
from georeport.models.role import Role, UserRole
from georeport.utils.realtime import NotificationSubscriptionManager


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def manager():
    return NotificationSubscriptionManager()


@pytest.fixture
def client(engine, manager):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    previous = app.state.subscriptions
    app.state.subscriptions = manager

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.subscriptions = previous


def auth_headers(user: Profile) -> dict:
    token = jwt.encode({"sub": str(user.id)}, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(session):
    def factory(email: str, permissions=None, **fields) -> Profile:
        user = Profile(email=email, **fields)
        session.add(user)
        session.commit()

        if permissions:
            role = Role(
                nombre=f"role-{email}",
                descripcion="test role",
                permisos=[p.value for p in permissions],
                created_by=user.id,
            )
            session.add(role)
            session.commit()
            session.add(UserRole(user_id=user.id, role_id=role.id, assigned_by=user.id))
            session.commit()

        session.refresh(user)
        return user

    return factory


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", list(Permission), first_name="Ada", last_name="Admin")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def member(make_user):
    return make_user("member@example.com", first_name="Max", last_name="Member")


@pytest.fixture
def member_headers(member):
    return auth_headers(member)


@pytest.fixture
def make_category(session):
    def factory(created_by: Profile, nombre: str = "Baches", **fields) -> Category:
        category = Category(nombre=nombre, created_by=created_by.id, **fields)
        session.add(category)
        session.commit()
        session.refresh(category)
        return category

    return factory


@pytest.fixture
def make_estado(session):
    def factory(created_by: Profile, nombre: str = "Abierto", **fields) -> Estado:
        estado = Estado(nombre=nombre, descripcion=f"Estado {nombre}", created_by=created_by.id, **fields)
        session.add(estado)
        session.commit()
        session.refresh(estado)
        return estado

    return factory


@pytest.fixture
def make_reporte(session, make_category, make_estado):
    def factory(created_by: Profile, nombre: str = "Bache en la calle", category=None, estado=None, **fields) -> Reporte:
        category = category or make_category(created_by, nombre=f"cat-{nombre}")
        estado = estado or make_estado(created_by, nombre=f"estado-{nombre}")
        reporte = Reporte(
            nombre=nombre,
            descripcion="Descripcion del reporte",
            categoria_id=category.id,
            estado_id=estado.id,
            created_by=created_by.id,
            **fields,
        )
        session.add(reporte)
        session.commit()
        session.refresh(reporte)
        return reporte

    return factory


@pytest.fixture
def token_for():
    def factory(user: Profile) -> str:
        return auth_headers(user)["Authorization"].split(" ", 1)[1]

    return factory
